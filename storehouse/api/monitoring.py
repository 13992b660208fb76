"""
Monitoring endpoints for the storehouse real-time service.

Exposes connection/group statistics with the registry/router consistency
result (service key only) and an open liveness check.
"""

from typing import Any

from fastapi import APIRouter, Depends

from ..auth_utils import Publisher
from ..container import ApplicationContainer
from ..dependencies import get_connection_directory, get_container, require_service
from ..realtime.connection_directory import ConnectionDirectory
from ..realtime.envelope import utc_now_z
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

monitoring_router = APIRouter(tags=["monitoring"])


@monitoring_router.get("/api/realtime/stats")
async def realtime_stats(
    _service: Publisher = Depends(require_service),
    directory: ConnectionDirectory = Depends(get_connection_directory),
) -> dict[str, Any]:
    """Connection and group counts per hub plus the consistency check result. Service key only."""
    stats = directory.get_stats()
    violations = directory.verify_consistency()
    if violations:
        logger.warning("Connection directory inconsistent", violations=violations)
    stats["consistent"] = not violations
    stats["violations"] = violations
    stats["timestamp"] = utc_now_z()
    return stats


@monitoring_router.get("/health")
async def health(container: ApplicationContainer = Depends(get_container)) -> dict[str, Any]:
    """Liveness check."""
    services = container.get_service_status()
    return {
        "status": "healthy" if container.is_initialized else "starting",
        "services": services,
        "timestamp": utc_now_z(),
    }
