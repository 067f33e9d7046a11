"""Metrics endpoint for Prometheus scraping."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from ..core.observability import get_prometheus_metrics

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Booking, inventory and gateway metrics for Prometheus to scrape",
    response_class=Response,
    tags=["Observability"]
)
async def metrics():
    """Return Prometheus metrics in text exposition format."""
    return Response(content=get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
