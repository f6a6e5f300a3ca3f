# backend/tutorbook/routes/checkout.py
"""
Checkout routes.

Endpoints:
    POST /checkout/create-session - Open a payment session for a booking or series
    GET /checkout/status/{booking_id} - Payment status, polled by the success page
    POST /checkout/cancel - Release an unpaid booking after an abandoned checkout
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends

from ..api.dependencies.auth import get_active_user, get_current_user
from ..api.dependencies.services import get_checkout_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.checkout import (
    CheckoutCancelRequest,
    CheckoutCancelResponse,
    CheckoutSessionCreate,
    CheckoutSessionResponse,
    CheckoutStatusResponse,
)
from ..services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout/create-session",
    response_model=CheckoutSessionResponse,
    responses={
        403: {"description": "Booking belongs to another student"},
        409: {"description": "Already paid or cancelled"},
        502: {"description": "Payment processor unavailable"},
    },
)
async def create_checkout_session(
    payload: CheckoutSessionCreate = Body(...),
    current_user: User = Depends(get_active_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponse:
    try:
        session = await asyncio.to_thread(
            checkout_service.create_session, current_user, payload
        )
        return CheckoutSessionResponse(**session)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/checkout/status/{booking_id}", response_model=CheckoutStatusResponse)
async def get_checkout_status(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutStatusResponse:
    try:
        booking = await asyncio.to_thread(
            checkout_service.get_payment_status, booking_id, current_user
        )
        return CheckoutStatusResponse(
            booking_id=booking.id,
            payment_status=booking.payment_status,
            paid_at=booking.paid_at,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/checkout/cancel", response_model=CheckoutCancelResponse)
async def cancel_checkout(
    payload: CheckoutCancelRequest = Body(...),
    current_user: User = Depends(get_current_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutCancelResponse:
    try:
        released = await asyncio.to_thread(
            checkout_service.cancel_checkout, payload.booking_id, current_user
        )
        return CheckoutCancelResponse(
            booking_id=payload.booking_id, released=released > 0, released_count=released
        )
    except DomainException as e:
        handle_domain_exception(e)
