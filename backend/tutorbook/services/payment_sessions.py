# backend/tutorbook/services/payment_sessions.py
"""
Checkout session lifecycle helpers shared by booking and checkout flows.

A booking row remembers its latest Checkout Session and the moment that
session stops being payable. Nothing may release a held slot while that
session could still be completed: the session is either past its expiry
or is closed with Stripe first.
"""

from datetime import datetime, timezone
import logging
from typing import Optional, Sequence

import stripe

from ..core.config import Settings
from ..models.booking import Booking

logger = logging.getLogger(__name__)

MOCK_SESSION_PREFIX = "cs_mock_"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_mock_session(session_id: Optional[str]) -> bool:
    return bool(session_id) and str(session_id).startswith(MOCK_SESSION_PREFIX)


def session_is_open(booking: Booking, now: datetime) -> bool:
    """True while the booking's checkout session may still be completed."""
    if not booking.stripe_session_id:
        return False
    expires_at = as_utc(booking.checkout_expires_at)
    # unknown expiry: assume Stripe's own 24h default still applies
    return expires_at is None or now < expires_at


def expire_session(session_id: str, config: Settings) -> bool:
    """
    Close an open Checkout Session so it can no longer be paid.

    Returns False when Stripe refuses, typically because the session was
    completed in the meantime. Mock sessions exist only locally and always
    close.
    """
    if is_mock_session(session_id) or not config.stripe_configured:
        return True
    try:
        stripe.checkout.Session.expire(
            session_id, api_key=config.stripe_secret_key.get_secret_value()
        )
    except stripe.StripeError as exc:
        logger.warning(f"Could not expire checkout session {session_id}: {exc}")
        return False
    logger.info(f"Checkout session {session_id} expired")
    return True


def close_open_session(rows: Sequence[Booking], now: datetime, config: Settings) -> bool:
    """
    Make sure no open session can still pay for ``rows``.

    True when there was no open session or it was expired successfully.
    """
    for row in rows:
        if session_is_open(row, now):
            return expire_session(row.stripe_session_id, config)
    return True
