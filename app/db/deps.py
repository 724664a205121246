# app/db/deps.py
from typing import Optional
from fastapi import Request
from app.services.v1 import ReconciliationEngine
from common import AppConfig, GatewayConfig

# Note: No import from main.py here!


def get_engine(request: Request) -> ReconciliationEngine:
    """
    Reconciliation engine dependency.
    Pulls the engine from app.state to support multiple app instances.
    """
    # We pull the engine instance wired during lifespan
    engine = getattr(request.app.state, "engine", None)

    if not engine:
        # This handles cases where the dependency is called but lifespan didn't run
        raise RuntimeError(
            "ReconciliationEngine not found in app.state. Ensure lifespan is configured."
        )

    return engine


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_gateway_config(request: Request) -> Optional[GatewayConfig]:
    return getattr(request.app.state, "gateway_config", None)


__all__ = ["get_engine", "get_app_config", "get_gateway_config"]
