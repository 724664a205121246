# common/config/app_config.py
"""
Complete application configuration with validation.
Database, payment gateway and meeting provider settings.
"""

from typing import Optional, Any
from pydantic import BaseModel, Field, field_validator, model_validator, SecretStr
from .config_types import EnvLogLevel, DbDriver, SslMode, Environment
from .env_config import require_env, get_env, get_env_list
from .logging_config import LoggingConfig
from pathlib import Path


class DatabaseConfig(BaseModel):
    """
    Database configuration with SSL/TLS support.

    Either a full ``url`` (DATABASE_URL) or discrete host/port/name
    settings must be provided.
    """

    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL")

    host: Optional[str] = Field(default=None, min_length=1)
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    name: Optional[str] = Field(default=None, min_length=1)
    slow_query_threshold: float = Field(
        default=1.0, description="Threshold for a query to be considered slow"
    )
    username: Optional[str] = Field(default=None, min_length=1)
    password: Optional[SecretStr] = Field(default=None)

    # Connection pooling
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, le=300)
    pool_recycle: int = Field(default=3600, ge=300)  # Min 5 minutes

    ssl_mode: Optional[SslMode] = Field(default=None)
    ssl_cert_path: Optional[Path] = Field(default=None)
    ssl_key_path: Optional[Path] = Field(default=None)
    ssl_ca_path: Optional[Path] = Field(default=None)

    driver: DbDriver = Field(default=DbDriver.ASYNCPG)

    model_config = {"frozen": True}

    @field_validator("ssl_cert_path", "ssl_key_path", "ssl_ca_path")
    @classmethod
    def validate_ssl_paths(cls, v: Optional[Path]) -> Optional[Path]:
        """Validate SSL certificate paths exist."""
        if v is not None and not v.exists():
            raise ValueError(f"SSL file not found: {v}")
        return v

    @model_validator(mode="after")
    def validate_target(self) -> "DatabaseConfig":
        if self.url:
            return self
        if self.driver == DbDriver.AIOSQLITE:
            raise ValueError("DATABASE_URL is required for the aiosqlite driver")
        if not (self.host and self.port and self.name):
            raise ValueError("DB_HOST, DB_PORT and DB_NAME are required without DATABASE_URL")
        return self

    @property
    def is_sqlite(self) -> bool:
        return bool(self.url) and self.url.startswith("sqlite")

    def get_connection_url(self, include_password: bool = False) -> str:
        """
        Build SQLAlchemy connection URL.

        Args:
            include_password: If True, include password in URL (use for actual connections)
                            If False, mask it (use for logging)
        """
        if self.url:
            return self.url

        if self.username:
            if include_password and self.password:
                auth = f"{self.username}:{self.password.get_secret_value()}"
            else:
                auth = f"{self.username}:****"
            return f"postgresql+{self.driver.value}://{auth}@{self.host}:{self.port}/{self.name}"

        return f"postgresql+{self.driver.value}://{self.host}:{self.port}/{self.name}"

    def requires_ssl(self) -> bool:
        return self.ssl_mode in [
            SslMode.REQUIRE,
            SslMode.VERIFY_CA,
            SslMode.VERIFY_FULL,
        ]

    def to_dict_safe(self) -> dict[str, Any]:
        """Convert to dict with sensitive data masked (safe for logging)."""
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "****"
        return data


class GatewayConfig(BaseModel):
    """
    Card payment gateway (Kiwoom Pay) settings.
    """

    merchant_id: str = Field(..., min_length=1)
    auth_key: SecretStr
    hash_url: str = Field(default="https://apitest.kiwoompay.co.kr/pay/hash")
    cancel_ready_url: str = Field(default="https://apitest.kiwoompay.co.kr/pay/ready")
    timeout: float = Field(default=15.0, gt=0, le=120)
    callback_ips: tuple[str, ...] = Field(default=("127.0.0.1", "::1"))
    simulated_prefix: str = Field(default="TX_SIM_")
    encoding: str = Field(default="euc-kr")

    model_config = {"frozen": True}


class MeetingConfig(BaseModel):
    """
    Google Calendar / Meet provisioning settings.

    Without credentials the provisioner hands out ``fallback_link``
    (development only).
    """

    calendar_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    refresh_token: Optional[SecretStr] = None
    duration_minutes: int = Field(default=30, ge=5, le=240)
    timeout: float = Field(default=10.0, gt=0, le=60)
    fallback_link: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def has_credentials(self) -> bool:
        return bool(
            self.calendar_id
            and self.client_id
            and self.client_secret
            and self.refresh_token
        )


class AppConfig(BaseModel):
    """
    Complete application configuration.

    All configuration is loaded from environment variables and validated
    at startup. Invalid configuration will fail fast with clear error messages.
    """

    app_title: str = Field(..., min_length=1)
    app_version: str = Field(..., pattern=r"^\d+\.\d+\.\d+$")  # Semantic versioning
    environment: Environment

    logging: LoggingConfig
    database: Optional[DatabaseConfig] = None
    gateway: Optional[GatewayConfig] = None
    meeting: MeetingConfig = Field(default_factory=MeetingConfig)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_production_settings(self) -> "AppConfig":
        """
        Validate production-specific requirements.
        """
        if self.environment.is_production:
            if self.database is None:
                raise ValueError("Database config required in production")
            if self.gateway is None:
                raise ValueError("Gateway config required in production")
            if self.logging.log_level == EnvLogLevel.DEBUG:
                raise ValueError("DEBUG log level not allowed in production")
            if self.meeting.fallback_link:
                raise ValueError("MEETING_FALLBACK_LINK not allowed in production")
        return self


def load_database_config(environment: Environment) -> Optional[DatabaseConfig]:
    """
    Load database configuration from environment.

    Environment variables:
    - DATABASE_URL: full URL, takes precedence over the discrete settings
    - DB_HOST, DB_PORT, DB_NAME, DB_DRIVER, DB_POOL_SIZE, DB_MAX_OVERFLOW,
      DB_POOL_TIMEOUT, DB_POOL_RECYCLE, SLOW_QUERY_THRESHOLD
    - DB_USER, DB_PASSWORD, DB_SSL_MODE (required in production)
    - DB_SSL_CERT, DB_SSL_KEY, DB_SSL_CA (optional)
    """
    url = get_env("DATABASE_URL")
    if url:
        return DatabaseConfig(
            url=url,
            slow_query_threshold=float(get_env("SLOW_QUERY_THRESHOLD", "1.0") or 1.0),
        )

    host = get_env("DB_HOST")
    if not host:
        return None

    driver_str = require_env("DB_DRIVER")
    try:
        driver = DbDriver(driver_str)
    except ValueError:
        valid_drivers = [d.value for d in DbDriver]
        raise ValueError(
            f"Invalid DB_DRIVER: {driver_str}. Must be one of: {valid_drivers}"
        )

    if environment.is_production:
        username = require_env("DB_USER")
        password_str: Optional[str] = require_env("DB_PASSWORD")
        ssl_mode_str: Optional[str] = require_env("DB_SSL_MODE")
    else:
        username = get_env("DB_USER")
        password_str = get_env("DB_PASSWORD")
        ssl_mode_str = get_env("DB_SSL_MODE")

    ssl_mode: Optional[SslMode] = None
    if ssl_mode_str:
        try:
            ssl_mode = SslMode(ssl_mode_str)
        except ValueError:
            valid_modes = [m.value for m in SslMode]
            raise ValueError(
                f"Invalid DB_SSL_MODE: {ssl_mode_str}. Must be one of: {valid_modes}"
            )

    ssl_cert = get_env("DB_SSL_CERT")
    ssl_key = get_env("DB_SSL_KEY")
    ssl_ca = get_env("DB_SSL_CA")

    return DatabaseConfig(
        host=host,
        port=int(require_env("DB_PORT")),
        name=require_env("DB_NAME"),
        username=username,
        password=SecretStr(password_str) if password_str else None,
        pool_size=int(require_env("DB_POOL_SIZE")),
        max_overflow=int(require_env("DB_MAX_OVERFLOW")),
        pool_timeout=int(require_env("DB_POOL_TIMEOUT")),
        pool_recycle=int(require_env("DB_POOL_RECYCLE")),
        ssl_mode=ssl_mode,
        ssl_cert_path=Path(ssl_cert) if ssl_cert else None,
        ssl_key_path=Path(ssl_key) if ssl_key else None,
        ssl_ca_path=Path(ssl_ca) if ssl_ca else None,
        driver=driver,
        slow_query_threshold=float(require_env("SLOW_QUERY_THRESHOLD")),
    )


def load_gateway_config() -> Optional[GatewayConfig]:
    """
    Load payment gateway configuration. Returns None when GATEWAY_MERCHANT_ID
    is unset (gateway calls are then unavailable).
    """
    merchant_id = get_env("GATEWAY_MERCHANT_ID")
    if not merchant_id:
        return None

    values: dict[str, Any] = {
        "merchant_id": merchant_id,
        "auth_key": SecretStr(require_env("GATEWAY_AUTH_KEY")),
    }
    optional = {
        "hash_url": get_env("GATEWAY_HASH_URL"),
        "cancel_ready_url": get_env("GATEWAY_CANCEL_READY_URL"),
        "timeout": get_env("GATEWAY_TIMEOUT"),
        "simulated_prefix": get_env("GATEWAY_SIMULATED_PREFIX"),
    }
    values.update({key: value for key, value in optional.items() if value})

    callback_ips = get_env_list("GATEWAY_CALLBACK_IPS")
    if callback_ips:
        values["callback_ips"] = tuple(callback_ips)

    return GatewayConfig(**values)


def load_meeting_config() -> MeetingConfig:
    client_secret = get_env("GOOGLE_CLIENT_SECRET")
    refresh_token = get_env("GOOGLE_REFRESH_TOKEN")
    return MeetingConfig(
        calendar_id=get_env("GOOGLE_CALENDAR_ID"),
        client_id=get_env("GOOGLE_CLIENT_ID"),
        client_secret=SecretStr(client_secret) if client_secret else None,
        refresh_token=SecretStr(refresh_token) if refresh_token else None,
        duration_minutes=int(get_env("MEETING_DURATION_MINUTES", "30") or 30),
        fallback_link=get_env("MEETING_FALLBACK_LINK"),
    )


def load_app_config() -> AppConfig:
    """
    Load complete application configuration.

    Raises:
        ValidationError: If configuration is invalid
        ConfigurationError: If required env vars are missing
    """
    from .logging_config import load_logging_config

    env_str = require_env("ENVIRONMENT")

    try:
        environment = Environment(env_str)
    except ValueError:
        valid_envs = [e.value for e in Environment]
        raise ValueError(
            f"Invalid ENVIRONMENT: {env_str}. Must be one of: {valid_envs}"
        )

    return AppConfig(
        app_title=require_env("APP_TITLE"),
        app_version=require_env("APP_VERSION"),
        environment=environment,
        logging=load_logging_config(),
        database=load_database_config(environment),
        gateway=load_gateway_config(),
        meeting=load_meeting_config(),
    )


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "GatewayConfig",
    "MeetingConfig",
    "load_app_config",
    "load_database_config",
    "load_gateway_config",
    "load_meeting_config",
]
