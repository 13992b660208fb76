"""Application lifecycle management for the storehouse real-time service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..container import ApplicationContainer
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger("storehouse.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the ApplicationContainer (one ConnectionDirectory per process)
    on startup and drops all connection records on shutdown. A container
    already placed on app.state (tests) is reused.
    """
    logger.info("Starting storehouse real-time service...")

    container = getattr(app.state, "container", None)
    if container is None:
        container = ApplicationContainer(config=getattr(app.state, "config", None))
        app.state.container = container
    await container.initialize()

    logger.info("Storehouse real-time service started", services=container.get_service_status())
    try:
        yield
    finally:
        logger.info("Shutting down storehouse real-time service...")
        await container.shutdown()
        logger.info("Storehouse real-time service stopped")
