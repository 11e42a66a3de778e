"""
Health and metrics endpoints
"""

import logging
from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from ..metrics import prometheus_metrics
from ..schemas import HealthResponse
from ..service import LookupService
from .deps import get_service

router = APIRouter(tags=["system"])


@router.get("/healthz", response_model=HealthResponse)
def healthz(service: LookupService = Depends(get_service)):
    return HealthResponse(status="ok", language=service.language, databases=service.status())


@router.get("/metrics", summary="Prometheus metrics")
async def get_prometheus_metrics() -> Response:
    """
    Get metrics in Prometheus exposition format.
    """
    try:
        metrics_data = prometheus_metrics.get_metrics()
    except Exception as e:
        logging.getLogger("ipinfo").error(f"Failed to get metrics: {e}")
        return PlainTextResponse(
            content="# Metrics temporarily unavailable\n",
            media_type="text/plain"
        )
    return PlainTextResponse(content=metrics_data, media_type=prometheus_metrics.get_content_type())
