"""Translation of domain exceptions into HTTP responses."""

import logging
from typing import NoReturn

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.exceptions import DomainException

logger = logging.getLogger(__name__)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """App-wide fallback for domain exceptions that escape a route."""
    assert isinstance(exc, DomainException)
    http_exc = exc.to_http_exception()
    if http_exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})
