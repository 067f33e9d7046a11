"""Health check router."""

import logging

from fastapi import APIRouter, Request

from ..core.clock import utcnow
from ..core.observability import SERVICE_NAME, SERVICE_VERSION
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping(request: Request) -> HealthResponse:
    """
    Health check endpoint.

    Returns service status, server time and the running state of the expiry sweep.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        service=SERVICE_NAME,
        timestamp=utcnow(),
        version=SERVICE_VERSION,
        workers=request.app.state.worker_manager.get_worker_status(),
    )

    logger.debug(
        "Health check requested",
        extra={"status": response_data.status.value, "workers": response_data.workers}
    )
    return response_data
