# common/config/env_config.py
import os
from typing import Optional
from common.api_error import ConfigurationError


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Optional setting; empty strings count as unset."""
    value = os.getenv(name)
    return value if value else default


def require_env(name: str) -> str:
    """Required setting; startup aborts when it is missing."""
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required env variable: {name}")
    return value


def get_env_list(name: str, separator: str = ",") -> list[str]:
    """Split a delimited env variable into trimmed, non-empty items."""
    raw = os.getenv(name) or ""
    return [item.strip() for item in raw.split(separator) if item.strip()]


__all__ = ["require_env", "get_env", "get_env_list"]
