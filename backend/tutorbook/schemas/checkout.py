"""Checkout session, payment status and release models."""

from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from ._strict_base import ApiModel, Money, StrictRequestModel


class CheckoutSessionCreate(StrictRequestModel):
    """
    Payment session request for a booking or a recurring series.

    ``booking_id`` is the first booking of a series. The trial flag is only
    meaningful for single lessons.
    """

    booking_id: str = Field(..., min_length=1)
    recurring_id: Optional[str] = None
    is_recurring: bool = False
    recurring_weeks: Optional[int] = None
    use_trial: bool = False

    @model_validator(mode="after")
    def _trial_excludes_recurring(self) -> "CheckoutSessionCreate":
        if self.is_recurring and self.use_trial:
            raise ValueError("A trial lesson cannot be part of a recurring series")
        return self


class CheckoutSessionResponse(ApiModel):
    session_id: str
    url: str
    amount: Money


class CheckoutStatusResponse(ApiModel):
    booking_id: str
    payment_status: str
    paid_at: Optional[datetime] = None


class CheckoutCancelRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)


class CheckoutCancelResponse(ApiModel):
    booking_id: str
    released: bool
    released_count: int


class WebhookAck(ApiModel):
    received: bool = True
    event_type: str
    handled: bool
    updated: int = 0
    refunded: int = 0


class AutoCompleteResponse(ApiModel):
    completed: int
