# backend/tutorbook/routes/jobs.py
"""
Scheduled job triggers.

Endpoints:
    POST /jobs/auto-complete - Complete paid lessons past the grace period
"""

import asyncio

from fastapi import APIRouter, Depends

from ..api.dependencies.auth import require_job_secret
from ..api.dependencies.services import get_booking_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..schemas.checkout import AutoCompleteResponse
from ..services.booking_service import BookingService

router = APIRouter(tags=["jobs"])


@router.post(
    "/jobs/auto-complete",
    response_model=AutoCompleteResponse,
    dependencies=[Depends(require_job_secret)],
)
async def auto_complete_lessons(
    booking_service: BookingService = Depends(get_booking_service),
) -> AutoCompleteResponse:
    try:
        completed = await asyncio.to_thread(booking_service.auto_complete_lessons)
        return AutoCompleteResponse(completed=completed)
    except DomainException as e:
        handle_domain_exception(e)
