# backend/tutorbook/routes/bookings.py
"""
Booking routes - lesson creation, listings and status changes.

Every booking is created unpaid (``paymentStatus: pending``) and only a
payment webhook moves it to ``paid``. Dates and times are UTC.

Endpoints:
    POST /bookings - Create a single lesson
    POST /bookings/recurring - Create a weekly series in one go
    GET /bookings/student - Lessons booked by the caller
    GET /bookings/teacher - Lessons taught by the caller
    GET /bookings/recurring/{recurring_id} - All lessons of a series
    DELETE /bookings/recurring/{recurring_id} - Cancel upcoming lessons of a series
    DELETE /bookings/{booking_id} - Cancel a lesson before it starts
    PATCH /bookings/{booking_id}/meeting-link - Tutor sets the video link
    POST /bookings/{booking_id}/dispute - Student disputes a paid lesson
"""

import asyncio
from decimal import Decimal
import logging

from fastapi import APIRouter, Body, Depends, status

from ..api.dependencies.auth import get_active_user, get_current_user
from ..api.dependencies.services import get_booking_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    DisputeRequest,
    MeetingLinkUpdate,
    RecurringBookingCreate,
    RecurringSeriesResponse,
)
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Selection missing, malformed or outside availability"},
        403: {"description": "Account suspended"},
        404: {"description": "Tutor not found"},
        409: {"description": "Slot already booked"},
    },
)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    current_user: User = Depends(get_active_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Create a single lesson awaiting payment.

    The payment amount is computed on the server: the trial price when
    ``useTrial`` is set and the student is still eligible, otherwise the
    tutor's hourly rate prorated to the lesson length.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking, current_user, booking_data
        )
        return BookingResponse.from_booking(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/bookings/recurring",
    response_model=RecurringSeriesResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "One or more weeks already booked"}},
)
async def create_recurring_booking(
    series_data: RecurringBookingCreate = Body(...),
    current_user: User = Depends(get_active_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> RecurringSeriesResponse:
    """Create every lesson of a weekly series, or none of them."""
    try:
        bookings, quote = await asyncio.to_thread(
            booking_service.create_recurring_series, current_user, series_data
        )
        return RecurringSeriesResponse(
            recurring_id=bookings[0].recurring_id,
            weeks=len(bookings),
            total_amount=quote.total,
            discount_percent=quote.discount_percent,
            savings=quote.savings,
            bookings=[BookingResponse.from_booking(b) for b in bookings],
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/bookings/student", response_model=BookingListResponse)
async def list_student_bookings(
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings = await asyncio.to_thread(booking_service.list_student_bookings, current_user)
        return BookingListResponse.from_bookings(bookings)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/bookings/teacher", response_model=BookingListResponse)
async def list_teacher_bookings(
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings = await asyncio.to_thread(booking_service.list_tutor_bookings, current_user)
        return BookingListResponse.from_bookings(bookings)
    except DomainException as e:
        handle_domain_exception(e)


def _series_response(bookings) -> RecurringSeriesResponse:
    total = sum((Decimal(b.payment_amount) for b in bookings), Decimal("0"))
    return RecurringSeriesResponse(
        recurring_id=bookings[0].recurring_id,
        weeks=bookings[0].recurring_total or len(bookings),
        total_amount=total,
        bookings=[BookingResponse.from_booking(b) for b in bookings],
    )


@router.get("/bookings/recurring/{recurring_id}", response_model=RecurringSeriesResponse)
async def get_recurring_series(
    recurring_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> RecurringSeriesResponse:
    try:
        bookings = await asyncio.to_thread(
            booking_service.get_series, recurring_id, current_user
        )
        return _series_response(bookings)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/bookings/recurring/{recurring_id}", response_model=RecurringSeriesResponse)
async def cancel_recurring_series(
    recurring_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> RecurringSeriesResponse:
    try:
        bookings = await asyncio.to_thread(
            booking_service.cancel_series, recurring_id, current_user
        )
        return _series_response(bookings)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    responses={
        403: {"description": "Not a participant"},
        409: {"description": "Booking is not confirmed"},
        422: {"description": "Lesson already started"},
    },
)
async def cancel_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, current_user
        )
        return BookingResponse.from_booking(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/bookings/{booking_id}/meeting-link", response_model=BookingResponse)
async def update_meeting_link(
    booking_id: str,
    payload: MeetingLinkUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.update_meeting_link, booking_id, current_user, payload.meeting_link
        )
        return BookingResponse.from_booking(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/bookings/{booking_id}/dispute", response_model=BookingResponse)
async def dispute_booking(
    booking_id: str,
    payload: DisputeRequest = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.dispute_booking, booking_id, current_user, payload.reason
        )
        return BookingResponse.from_booking(booking)
    except DomainException as e:
        handle_domain_exception(e)
