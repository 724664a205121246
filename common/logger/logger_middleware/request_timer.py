# common/logger/logger_middleware/request_timer.py
import time
from contextlib import contextmanager
from typing import Iterator

from common.context_vars import request_timer_context_var


class RequestTimer:
    def __init__(self) -> None:
        self.timings: dict[str, float] = {}

    @contextmanager
    def capture(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = (time.perf_counter() - start) * 1000
            # Accumulate when the same name is captured more than once
            self.timings[name] = self.timings.get(name, 0) + duration

    def format_server_timing(self) -> str:
        # Formats into: gateway;dur=10.5, meeting;dur=5.2
        return ", ".join(
            [f"{name};dur={dur:.2f}" for name, dur in self.timings.items()]
        )


@contextmanager
def capture_timing(name: str) -> Iterator[None]:
    """
    Time a block against the current request's timer.
    No-op outside an HTTP request (engine used from scripts or tests).
    """
    timer = request_timer_context_var.get()
    if timer is None:
        yield
        return
    with timer.capture(name):
        yield


__all__ = ["RequestTimer", "capture_timing"]
