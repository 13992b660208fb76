"""
FastAPI application factory for the storehouse real-time service.

This module handles FastAPI app creation, middleware configuration,
and router registration.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..api.monitoring import monitoring_router
from ..api.notifications import notifications_router
from ..api.real_time import hubs_router
from ..config import get_config
from ..config.models import AppConfig
from ..structured_logging.enhanced_logging_config import get_logger
from .error_handlers import register_error_handlers
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Configuration to use instead of get_config()

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    config = config or get_config()

    app = FastAPI(
        title="Storehouse Real-Time Service",
        description="Company chat and order notification hubs for the storehouse dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    cors = config.cors
    allow_methods = [str(m).upper() for m in cors.allow_methods]
    logger.info(
        "CORS configuration",
        allow_origins=cors.allow_origins,
        allow_methods=allow_methods,
        allow_headers=cors.allow_headers,
        allow_credentials=cors.allow_credentials,
        max_age=cors.max_age,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.allow_origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=allow_methods,
        allow_headers=cors.allow_headers,
        max_age=cors.max_age,
    )

    register_error_handlers(app, include_details=config.logging.environment != "production")

    app.include_router(hubs_router)
    app.include_router(notifications_router)
    app.include_router(monitoring_router)

    return app
