# app/services/v1/side_effects.py
from typing import Awaitable, Callable, Optional, TypeVar
from common import AppLogger, logger as default_logger

T = TypeVar("T")


async def run_non_critical(
    effect: str,
    action: Callable[[], Awaitable[T]],
    *,
    log: Optional[AppLogger] = None,
) -> Optional[T]:
    """
    Run a best-effort side effect (meeting link, notification).

    Failures are logged as warnings and reported as ``None``; they never
    reach the caller or undo state that has already been committed.
    """
    try:
        return await action()
    except Exception as e:
        (log or default_logger).warning(
            "Non-critical side effect failed",
            effect=effect,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None


__all__ = ["run_non_critical"]
