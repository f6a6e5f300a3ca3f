# backend/tutorbook/routes/availability.py
"""
Public tutor availability routes.

Endpoints:
    GET /tutors/{tutor_id}/availability - Weekly UTC slot map of a tutor
    GET /tutors/{tutor_id}/slots - Open slots on one date in the viewer's zone
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..api.dependencies.services import get_availability_service
from ..api.errors import handle_domain_exception
from ..core.constants import DEFAULT_TIMEZONE
from ..core.exceptions import DomainException
from ..schemas.availability import (
    BookableSlotResponse,
    BookableSlotsResponse,
    TutorAvailabilityResponse,
)
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


@router.get("/tutors/{tutor_id}/availability", response_model=TutorAvailabilityResponse)
async def get_tutor_availability(
    tutor_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> TutorAvailabilityResponse:
    """
    Weekly availability of a tutor; every time is ``HH:MM`` UTC.

    An unknown tutor, or one who has not set availability yet, yields an
    empty map rather than an error.
    """
    try:
        view = await asyncio.to_thread(availability_service.get_tutor_availability, tutor_id)
        return TutorAvailabilityResponse.from_view(view)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/tutors/{tutor_id}/slots", response_model=BookableSlotsResponse)
async def get_bookable_slots(
    tutor_id: str,
    date: str = Query(..., description="Lesson date, YYYY-MM-DD"),
    timezone: Optional[str] = Query(default=None, description="Viewer's IANA timezone"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> BookableSlotsResponse:
    try:
        slots = await asyncio.to_thread(
            availability_service.get_bookable_slots, tutor_id, date, timezone
        )
        return BookableSlotsResponse(
            tutor_id=tutor_id,
            date=date,
            timezone=timezone or DEFAULT_TIMEZONE,
            slots=[BookableSlotResponse.from_slot(slot) for slot in slots],
        )
    except DomainException as e:
        handle_domain_exception(e)
