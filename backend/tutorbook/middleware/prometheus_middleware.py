"""
Prometheus metrics middleware for HTTP request tracking.

Records duration and count per method, normalized path and status code.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.ulid_helper import is_valid_ulid
from ..monitoring.prometheus_metrics import prometheus_metrics


def normalize_path(raw_path: str) -> str:
    """Collapse ids so label cardinality stays bounded: /api/bookings/01H.. -> /api/bookings/:id"""
    return "/".join(
        ":id" if segment.isdigit() or is_valid_ulid(segment) else segment
        for segment in raw_path.split("/")
    )


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for HTTP requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip the scrape endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        path = normalize_path(request.url.path)
        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            prometheus_metrics.record_http_request(
                method=request.method,
                path=path,
                duration=time.time() - start_time,
                status_code=status_code,
            )
