# backend/tutorbook/routes/health.py
"""Liveness and Prometheus scrape endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response

from .. import __version__
from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "tutorbook-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
