# app/db/db_manager.py
"""
Database manager focused on connection management and session handling.
Schema migrations are handled separately via Alembic CLI.

Design principles:
- Single responsibility: Connection/session management only
- Fail fast: Invalid configuration crashes on startup
- Explicit over implicit: No magic auto-migrations
"""

import time
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine,
)
from sqlalchemy import event, text
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Any, Optional
from common import DatabaseConfig, logger
from .unit_of_work import SqlUnitOfWork


class DbManager:
    """
    Database connection and session manager.

    Responsibilities:
    - Async engine/connection pool management
    - Session and unit-of-work lifecycle
    - Health checks and slow query logging

    NOT responsible for:
    - Schema creation/migration (use Alembic CLI)

    Usage:
        # Startup
        db_manager = DbManager.from_config(config.database)
        await db_manager.verify_connection()

        # Runtime
        async with db_manager.unit_of_work() as uow:
            payment = await uow.payments.get(payment_id, for_update=True)

        # Shutdown
        await db_manager.dispose()
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        slow_query_threshold: Optional[float] = None,
        echo: bool = False,
        connect_args: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize database manager.

        Args:
            url: Database URL (with proper driver, e.g., postgresql+asyncpg://)
            pool_size: Number of persistent connections
            max_overflow: Additional connections beyond pool_size
            pool_timeout: Seconds to wait for connection from pool
            pool_recycle: Recycle connections after N seconds
            pool_pre_ping: Test connections before using
            slow_query_threshold: Seconds after which a statement is logged as slow
            echo: Log all SQL statements (use for debugging)
            connect_args: Driver-specific connection arguments (SSL, etc.)
        """
        self._validate_url(url)
        self._is_sqlite = url.startswith("sqlite")

        self._config: dict[str, Any] = {
            "dialect": url.split("://", 1)[0],
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
        }

        engine_kwargs: dict[str, Any] = {
            "echo": echo,
            "connect_args": connect_args or {},
        }
        # SQLite engines pick their own pool class and reject sizing arguments
        if not self._is_sqlite:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=pool_pre_ping,
            )

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)

        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        if slow_query_threshold:
            self._install_slow_query_logging(slow_query_threshold)

        self._verified = False

        logger.info(
            "DbManager initialized",
            dialect=self._config["dialect"],
            pool_size=None if self._is_sqlite else pool_size,
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig, **kwargs: Any) -> "DbManager":
        """
        Create DbManager from DatabaseConfig with SSL support.

        Example:
            db_manager = DbManager.from_config(config.database)
        """
        connect_args = kwargs.pop("connect_args", {})

        if config.ssl_mode and config.driver.value == "asyncpg" and not config.url:
            import ssl as ssl_module

            mode = config.ssl_mode.value
            if mode == "disable":
                connect_args["ssl"] = False
            elif mode in ["require", "verify-ca", "verify-full"]:
                ssl_context = ssl_module.create_default_context()
                if config.ssl_ca_path:
                    ssl_context.load_verify_locations(cafile=str(config.ssl_ca_path))
                if config.ssl_cert_path and config.ssl_key_path:
                    ssl_context.load_cert_chain(
                        certfile=str(config.ssl_cert_path),
                        keyfile=str(config.ssl_key_path),
                    )
                if mode == "verify-full":
                    ssl_context.check_hostname = True
                    ssl_context.verify_mode = ssl_module.CERT_REQUIRED
                else:
                    ssl_context.check_hostname = False
                    ssl_context.verify_mode = ssl_module.CERT_NONE
                connect_args["ssl"] = ssl_context

        return cls(
            url=config.get_connection_url(include_password=True),
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
            slow_query_threshold=config.slow_query_threshold,
            connect_args=connect_args,
            **kwargs,
        )

    @staticmethod
    def _validate_url(url: str) -> None:
        """Validate database URL format."""
        if not url or not url.startswith(
            ("postgresql+asyncpg://", "postgresql+psycopg://", "sqlite+aiosqlite://")
        ):
            raise ValueError(
                "Invalid database URL. Expected postgresql+asyncpg://, "
                f"postgresql+psycopg:// or sqlite+aiosqlite://, got: {url[:20]}..."
            )

    def _install_slow_query_logging(self, threshold: float) -> None:
        sync_engine = self.engine.sync_engine

        @event.listens_for(sync_engine, "before_cursor_execute")
        def before_cursor_execute(conn, _cursor, _statement, _parameters, _context, _executemany):
            conn.info.setdefault("query_start_time", []).append(time.perf_counter())

        @event.listens_for(sync_engine, "after_cursor_execute")
        def after_cursor_execute(conn, _cursor, statement, _parameters, _context, _executemany):
            elapsed = time.perf_counter() - conn.info["query_start_time"].pop(-1)
            if elapsed > threshold:
                logger.warning(
                    "Slow query",
                    duration_s=round(elapsed, 3),
                    statement=statement[:200],
                )

    async def verify_connection(self) -> None:
        """
        Verify database connection on startup.
        Fails fast if connection cannot be established.

        Raises:
            ConnectionError: If connection fails
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._verified = True
            logger.info("Database connection verified")
        except Exception as e:
            logger.error("Database connection failed", error=str(e))
            raise ConnectionError(f"Failed to connect to database: {e}") from e

    async def verify_migrations_current(self) -> str:
        """
        Check that Alembic has stamped the database.

        Returns:
            The current migration revision

        Raises:
            RuntimeError: If alembic_version table doesn't exist
        """
        if self._is_sqlite:
            exists_query = (
                "SELECT COUNT(*) FROM sqlite_master "
                "WHERE type = 'table' AND name = 'alembic_version'"
            )
        else:
            exists_query = (
                "SELECT EXISTS (SELECT 1 FROM information_schema.tables "
                "WHERE table_name = 'alembic_version')"
            )

        async with self.engine.connect() as conn:
            result = await conn.execute(text(exists_query))
            if not result.scalar():
                raise RuntimeError(
                    "alembic_version table not found. "
                    "Have you run 'alembic upgrade head'?"
                )

            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            current_version = result.scalar()

        logger.info("Current migration version", revision=current_version)
        return str(current_version)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional database session.

        Automatically commits on success, rolls back on exception.
        """
        session = self.session_maker()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Session error, rolled back", error=str(e))
            raise
        finally:
            await session.close()

    def unit_of_work(self) -> SqlUnitOfWork:
        """One transaction over the appointment/payment stores."""
        return SqlUnitOfWork(self.session_maker)

    async def health_check(self) -> dict[str, Any]:
        """
        Health check with response time.

        Example:
            {"healthy": True, "response_time_ms": 5.2, "pool_status": "..."}
        """
        start = time.perf_counter()

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

            return {
                "healthy": True,
                "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
                "pool_status": self.engine.pool.status(),
            }

        except Exception as e:
            return {
                "healthy": False,
                "error": str(e),
            }

    async def dispose(self) -> None:
        """
        Dispose of all connections and cleanup resources.
        Call this on application shutdown.
        """
        await self.engine.dispose()
        logger.info("Database connections disposed")

    def get_config_snapshot(self) -> dict[str, Any]:
        """Get current configuration (for monitoring/debugging)."""
        return self._config.copy()


__all__ = ["DbManager"]
