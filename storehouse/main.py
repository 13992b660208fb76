"""
Storehouse real-time service - main application entry point.

Sets up logging first, then builds the FastAPI application. Run with
``python -m storehouse.main`` or ``uvicorn storehouse.main:app``.
"""

import uvicorn
from fastapi import FastAPI

from .app.factory import create_app
from .config import get_config
from .structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging

# Early logging setup - must happen before any logger creation
config = get_config()
setup_enhanced_logging(config.to_legacy_dict())

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app: FastAPI = create_app(config)


def main() -> None:
    """Start the service with uvicorn."""
    logger.info("Starting uvicorn", host=config.server.host, port=config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


if __name__ == "__main__":
    main()
