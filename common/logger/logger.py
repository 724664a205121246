# common/logger/logger.py
"""
Application logger with explicit initialization.

Usage:
    from common.logger import get_app_logger

    logger = get_app_logger(__name__)
    logger.info("Payment confirmed", payment_id=payment_id)

    # Per-operation context
    log = logger.bind(payment_id=payment_id)
    log.warning("Amount mismatch", expected=50000, claimed=49000)
"""

from typing import Any, Dict, Optional
import structlog

from common.config.structlog_config import get_logger as _get_structlog_logger


class AppLogger:
    """
    Application logger wrapper.

    Provides a typed interface to structlog with lazy binding, so modules
    can create loggers at import time before configure_structlog() runs.
    """

    def __init__(self, name: str = "app", context: Optional[Dict[str, Any]] = None) -> None:
        self._name = name
        self._context: Dict[str, Any] = dict(context or {})
        self._logger_instance: Optional[structlog.BoundLogger] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def _logger(self) -> structlog.BoundLogger:
        """
        Lazy-load logger instance.
        This ensures structlog is configured before first use.
        """
        if self._logger_instance is None:
            base = _get_structlog_logger(self._name)
            self._logger_instance = base.bind(**self._context) if self._context else base
        return self._logger_instance

    def bind(self, **context: Any) -> "AppLogger":
        """Return a new logger carrying extra context on every event."""
        return AppLogger(self._name, {**self._context, **context})

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.debug(msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.info(msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._logger.warning(msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.error(msg, **kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._logger.critical(msg, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at error level with the active exception attached."""
        self._logger.error(msg, exc_info=True, **kwargs)


def get_app_logger(name: str = "app") -> AppLogger:
    """
    Get application logger instance.

    Args:
        name: Logger name
    """
    return AppLogger(name=name)


# Convenience instance for simple usage
logger = get_app_logger()

__all__ = ["logger", "AppLogger", "get_app_logger"]
