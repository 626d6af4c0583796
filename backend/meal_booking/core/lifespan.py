"""
Application lifespan handler.
Manages startup and shutdown of the meal booking process.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from meal_booking.models import Base
from meal_booking.services.scheduling.manager import start_scheduler, stop_scheduler
from shared.config.logging import get_logger, setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import get_engine

logger = get_logger("meal_booking")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate settings before startup
    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with invalid configuration."
            )
        else:
            logger.warning("Running with invalid settings (acceptable for development only)")

    # Startup
    logger.info("Starting meal booking service", port=settings.service_port, env=settings.environment)

    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables created/verified")

    if settings.scheduler_enabled:
        await start_scheduler()
        logger.info("Auto-registration scheduler started")
    else:
        logger.info("Auto-registration scheduler disabled")

    yield

    # Shutdown
    logger.info("Shutting down meal booking service")

    if settings.scheduler_enabled:
        await stop_scheduler()
        logger.info("Auto-registration scheduler stopped")

    get_engine().dispose()
    logger.info("Database engine disposed")
