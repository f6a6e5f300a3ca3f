# backend/tutorbook/main.py
"""
Tutorbook API application.

Run locally with:
    uvicorn tutorbook.main:app --reload --app-dir backend
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.errors import domain_exception_handler
from .core.config import settings
from .core.constants import BRAND_NAME
from .core.exceptions import DomainException
from .core.request_context import REQUEST_ID_HEADER, attach_request_id_filter
from .database import init_db
from .middleware.prometheus_middleware import PrometheusMiddleware
from .middleware.request_id import RequestIdMiddleware
from .routes import (
    availability,
    bookings,
    checkout,
    health,
    jobs,
    pricing,
    stripe_webhooks,
    tutor,
    users,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
attach_request_id_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up (environment: {settings.environment})")
    if settings.auto_create_tables:
        init_db()
        logger.info("Database tables ensured")
    if not settings.stripe_configured:
        logger.warning("Stripe is not configured; checkout sessions are mocked")
    yield
    logger.info(f"{BRAND_NAME} API shutting down")


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Tutor availability, lesson booking, pricing and checkout",
    version=__version__,
    lifespan=app_lifespan,
)

app.add_exception_handler(DomainException, domain_exception_handler)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)

api = APIRouter(prefix="/api")
api.include_router(availability.router)
api.include_router(tutor.router)
api.include_router(users.router)
api.include_router(pricing.router)
api.include_router(bookings.router)
api.include_router(checkout.router)
api.include_router(stripe_webhooks.router)
api.include_router(jobs.router)

app.include_router(api)
app.include_router(health.router)

# Export what's needed
fastapi_app = app
__all__ = ["app", "fastapi_app"]
