# app/app_factory.py
"""
FastAPI application assembly: middleware, error handling, routers, health.

Kept separate from main.py so tests can build an app around their own
configuration and engine without touching the process environment.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from app.api.v1 import appointment_router, payment_router
from common import AppConfig, AppError, get_app_logger, is_configured
from common.logger.logger_middleware import RequestLoggingMiddleware

logger = get_app_logger(__name__)

API_PREFIX = "/api/v1"


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Current system health status")
    timestamp: datetime = Field(..., description="Server time in ISO 8601 format")
    version: str = Field(..., description="Application version")
    logging_configured: bool = Field(..., description="Logging configuration status")
    log_level: str = Field(..., description="Application log level")
    database: Optional[dict[str, Any]] = Field(None, description="Database health")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error message describing the failure")
    timestamp: datetime = Field(..., description="Server time when the error occurred")


async def app_error_handler(request: Request, exc: AppError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Domain Error: {exc.code}",
        path=request.url.path,
        error_code=exc.code,
        message=exc.message,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def create_app(config: AppConfig, lifespan: Any = None) -> FastAPI:
    app = FastAPI(
        title=config.app_title,
        version=config.app_version,
        description=f"Running in {config.environment.value} environment",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.gateway_config = config.gateway

    app.add_middleware(
        RequestLoggingMiddleware,
        expose_performance_headers=not config.environment.is_production,
    )
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(appointment_router, prefix=API_PREFIX)
    app.include_router(payment_router, prefix=API_PREFIX)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        responses={
            200: {"description": "System is healthy", "model": HealthCheckResponse},
            503: {"description": "System is unhealthy", "model": ErrorResponse},
        },
    )
    async def check_health(request: Request) -> HealthCheckResponse:
        db_manager = getattr(request.app.state, "db_manager", None)
        database = await db_manager.health_check() if db_manager else None

        if database is not None and not database["healthy"]:
            logger.error("Health check failed", endpoint="/health", error=database.get("error"))
            err = ErrorResponse(
                error="database unavailable",
                timestamp=datetime.now(timezone.utc),
            )
            raise HTTPException(status_code=503, detail=err.model_dump(mode="json"))

        logger.debug("Health check passed", version=config.app_version, endpoint="/health")
        return HealthCheckResponse(
            status="Healthy",
            timestamp=datetime.now(timezone.utc),
            version=config.app_version,
            logging_configured=is_configured(),
            log_level=config.logging.level_value,
            database=database,
        )

    return app


__all__ = ["create_app", "app_error_handler", "API_PREFIX"]
