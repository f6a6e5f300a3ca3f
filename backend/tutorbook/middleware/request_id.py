"""
Request id middleware.

Reuses an inbound ``X-Request-ID`` or mints a ULID, exposes it to logging
through the request context and echoes it on the response.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.request_context import REQUEST_ID_HEADER, reset_request_id, set_request_id
from ..core.ulid_helper import generate_ulid


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
