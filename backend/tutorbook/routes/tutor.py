# backend/tutorbook/routes/tutor.py
"""
Tutor self-service routes.

Endpoints:
    GET /tutor/availability - The signed-in tutor's weekly availability
    PUT /tutor/availability - Replace it wholesale (all times UTC)
"""

import asyncio

from fastapi import APIRouter, Body, Depends

from ..api.dependencies.auth import get_current_user
from ..api.dependencies.services import get_availability_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.availability import AvailabilityUpdate, TutorAvailabilityResponse
from ..services.availability_service import AvailabilityService

router = APIRouter(tags=["tutor"])


@router.get("/tutor/availability", response_model=TutorAvailabilityResponse)
async def get_own_availability(
    current_user: User = Depends(get_current_user),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> TutorAvailabilityResponse:
    try:
        view = await asyncio.to_thread(availability_service.get_own_availability, current_user)
        return TutorAvailabilityResponse.from_view(view)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/tutor/availability", response_model=TutorAvailabilityResponse)
async def replace_own_availability(
    payload: AvailabilityUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> TutorAvailabilityResponse:
    """Replace the weekly availability; times are UTC ``HH:MM`` and duplicates collapse."""
    try:
        view = await asyncio.to_thread(
            availability_service.replace_availability,
            current_user,
            payload.availability,
            payload.timezone,
        )
        return TutorAvailabilityResponse.from_view(view)
    except DomainException as e:
        handle_domain_exception(e)
