# main.py
from datetime import timedelta
from contextlib import asynccontextmanager
from fastapi import FastAPI
from dotenv import load_dotenv
from common.config import initialize_config, get_config
from common.logger import get_app_logger
from common.api_error import ConfigurationError
from app.app_factory import create_app
from app.db import DbManager
from app.integrations import DbNotifier, GoogleMeetProvisioner, KiwoomGatewayClient
from app.services.v1 import ReconciliationEngine

load_dotenv()
try:
    initialize_config()
except ConfigurationError as e:
    # Can't use logger yet, but that's OK - this is a fatal startup error
    print(f"FATAL: Configuration error:\n{e}")
    import sys

    sys.exit(1)

config = get_config()
logger = get_app_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _db_config = config.database
    if not _db_config:
        raise RuntimeError("Database configuration required")

    logger.info("Database configuration", **_db_config.to_dict_safe())

    db_manager = DbManager.from_config(_db_config)
    await db_manager.verify_connection()

    # Ensure migrations are up-to-date (fail fast if not)
    try:
        await db_manager.verify_migrations_current()
        logger.info("All migrations applied")
    except RuntimeError as e:
        logger.error("Migration check failed", error=str(e))
        logger.error("Run 'alembic upgrade head'")
        raise

    if config.gateway is None:
        logger.warning("GATEWAY_MERCHANT_ID not set, gateway calls are disabled")

    app.state.db_manager = db_manager
    app.state.engine = ReconciliationEngine(
        db_manager.unit_of_work,
        gateway=KiwoomGatewayClient(config.gateway) if config.gateway else None,
        meetings=GoogleMeetProvisioner(config.meeting),
        notifier=DbNotifier(db_manager.unit_of_work),
        meeting_duration=timedelta(minutes=config.meeting.duration_minutes),
    )

    yield
    logger.info("shutting down")
    await db_manager.dispose()


app = create_app(config, lifespan=lifespan)


__all__ = ["app", "config"]
