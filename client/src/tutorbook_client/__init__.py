"""Async client and booking-flow state for the Tutorbook API."""

from .booking_flow import BookingFlow
from .client import TutorbookClient
from .config import Settings
from .cooldown import NotificationCooldown
from .errors import (
    ClientAuthError,
    ClientConnectionError,
    ClientError,
    ClientNotFoundError,
    ClientRequestError,
)
from .poller import PaymentStatusPoller

__all__ = [
    "BookingFlow",
    "ClientAuthError",
    "ClientConnectionError",
    "ClientError",
    "ClientNotFoundError",
    "ClientRequestError",
    "NotificationCooldown",
    "PaymentStatusPoller",
    "Settings",
    "TutorbookClient",
]
