# backend/tutorbook/routes/stripe_webhooks.py
"""
Stripe webhook receiver.

Endpoints:
    POST /webhook/stripe - Checkout session events (paid, expired, failed)
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..api.dependencies.services import get_checkout_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..schemas.checkout import WebhookAck
from ..services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhook/stripe", response_model=WebhookAck)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> WebhookAck:
    """
    Verify and apply a Stripe event.

    Unknown event types are acknowledged with ``handled: false`` so Stripe
    does not keep retrying them.
    """
    payload = await request.body()
    try:
        event = checkout_service.construct_webhook_event(payload, stripe_signature)
        result = await asyncio.to_thread(checkout_service.handle_webhook_event, event)
        return WebhookAck(**result)
    except DomainException as e:
        logger.warning(f"Stripe webhook rejected: {e.message}")
        handle_domain_exception(e)
