# common/logger/logger_middleware/logger_middleware.py
"""
Request logging middleware for FastAPI.

Binds a request id into structlog's context vars so every engine log line
emitted while serving the request (including gateway callbacks) carries it.

Usage Example:
    app.add_middleware(
        RequestLoggingMiddleware,
        expose_performance_headers=True,
        slow_request_threshold=500,
    )
"""

from typing import Any, Callable, Awaitable, Optional
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import structlog
import time
import uuid

from common.context_vars import request_timer_context_var, request_id_context_var
from .request_timer import RequestTimer
from ..logger import get_app_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured request logging.

    Log level strategy:
    - ERROR: 5xx responses
    - WARNING: Slow requests or 4xx errors
    - INFO: Successful requests
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        expose_performance_headers: Optional[bool] = False,
        slow_request_threshold: float = 1000.0,
        log_query_params: bool = False,
        log_client_info: bool = True,
        logger_name: Optional[str] = None,
    ):
        """
        Args:
            app: ASGI application
            expose_performance_headers: Add a Server-Timing header to responses
            slow_request_threshold: Milliseconds after which a request is flagged slow
            log_query_params: Include query parameters (gateway callbacks carry card data)
            log_client_info: Log client IP and User-Agent
            logger_name: Custom logger name
        """
        super().__init__(app)
        self.expose_performance_headers = expose_performance_headers
        self.slow_request_threshold = slow_request_threshold
        self.log_query_params = log_query_params
        self.log_client_info = log_client_info
        self.logger = get_app_logger(logger_name or __name__)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        timer = RequestTimer()
        timer_token = request_timer_context_var.set(timer)
        start_time = time.perf_counter()

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_token = request_id_context_var.set(request_id)
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            with timer.capture("app"):
                response = await call_next(request)
        finally:
            request_timer_context_var.reset(timer_token)
            request_id_context_var.reset(request_id_token)
            structlog.contextvars.unbind_contextvars("request_id")

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id

        expose = self.expose_performance_headers or getattr(
            request.state, "expose_perf", False
        )
        if expose:
            timing_header = timer.format_server_timing()
            response.headers["Server-Timing"] = (
                f"{timing_header}, total;dur={duration_ms:.2f}"
            )

        self._log_request(request, response, duration_ms, request_id, timer)
        return response

    def _log_request(
        self,
        request: Request,
        response: Response,
        duration_ms: float,
        request_id: str,
        timer: RequestTimer,
    ) -> None:
        log_data: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
        adapter_timings = {
            name: round(dur, 2) for name, dur in timer.timings.items() if name != "app"
        }
        if adapter_timings:
            log_data["timings_ms"] = adapter_timings
        if self.log_client_info and request.client:
            log_data["client_host"] = request.client.host
            log_data["user_agent"] = request.headers.get("user-agent")
        if self.log_query_params and request.query_params:
            log_data["query_params"] = dict(request.query_params)

        if response.status_code >= 500:
            self.logger.error("Request failed with server error", **log_data)
        elif duration_ms > self.slow_request_threshold:
            self.logger.warning(
                f"Slow request detected ({log_data['duration_ms']}ms)", **log_data
            )
        elif response.status_code >= 400:
            self.logger.warning("Request failed with client error", **log_data)
        else:
            self.logger.info("Request completed", **log_data)


async def enable_perf_headers(request: Request):
    """
    Dependency to flag that this request should expose performance headers.
    Requires RequestLoggingMiddleware to be active.
    """
    request.state.expose_perf = True


__all__ = [
    "RequestLoggingMiddleware",
    "enable_perf_headers",
]
