"""
Booking request and response models.

Dates travel as ``YYYY-MM-DD`` and times as 24-hour ``HH:MM`` UTC strings.
Payment fields are never accepted from clients; they are derived on the
server and only appear in responses.
"""

from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator

from ..core.constants import (
    DEFAULT_LESSON_MINUTES,
    MAX_DISPUTE_REASON_LENGTH,
    MAX_LESSON_MINUTES,
    MAX_MEETING_LINK_LENGTH,
    MIN_LESSON_MINUTES,
)
from ..domain.scheduling import format_time
from ..models.booking import Booking
from ._strict_base import ApiModel, Money, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """
    Single lesson request.

    ``date`` and ``time`` are optional at the schema level so a missing
    selection is reported with the booking flow's own message.
    """

    tutor_id: str = Field(..., min_length=1, description="Tutor profile id")
    date: Optional[str] = Field(default=None, description="Lesson date, YYYY-MM-DD (UTC)")
    time: Optional[str] = Field(default=None, description="Lesson start, HH:MM (UTC)")
    duration: int = Field(
        default=DEFAULT_LESSON_MINUTES, ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES
    )
    use_trial: bool = Field(default=False, description="Apply the one-time trial price")


class RecurringBookingCreate(StrictRequestModel):
    """Weekly series at one weekday and time."""

    tutor_id: str = Field(..., min_length=1)
    start_date: Optional[str] = Field(default=None, description="First lesson, YYYY-MM-DD")
    time: Optional[str] = Field(default=None, description="Lesson start, HH:MM (UTC)")
    weeks: int = Field(..., description="Number of weekly lessons: 1, 2, 4 or 8")
    duration: int = Field(
        default=DEFAULT_LESSON_MINUTES, ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES
    )


class BookingResponse(ApiModel):
    id: str
    tutor_id: str
    tutor_name: Optional[str] = None
    student_id: str
    date: str
    time: str
    duration: int
    status: str
    payment_status: str
    payment_amount: Money
    is_trial: bool
    meeting_link: Optional[str] = None
    review_completed: bool = False
    recurring_id: Optional[str] = None
    recurring_index: Optional[int] = None
    recurring_total: Optional[int] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            tutor_id=booking.tutor_id,
            tutor_name=booking.tutor.name if booking.tutor is not None else None,
            student_id=booking.student_id,
            date=booking.booking_date.isoformat(),
            time=format_time(booking.start_time),
            duration=booking.duration_minutes,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_amount=booking.payment_amount,
            is_trial=bool(booking.is_trial),
            meeting_link=booking.meeting_link,
            review_completed=bool(booking.review_completed),
            recurring_id=booking.recurring_id,
            recurring_index=booking.recurring_index,
            recurring_total=booking.recurring_total,
            paid_at=booking.paid_at,
            cancelled_at=booking.cancelled_at,
            created_at=booking.created_at,
        )


class BookingListResponse(ApiModel):
    bookings: List[BookingResponse]

    @classmethod
    def from_bookings(cls, bookings: List[Booking]) -> "BookingListResponse":
        return cls(bookings=[BookingResponse.from_booking(b) for b in bookings])


class RecurringSeriesResponse(ApiModel):
    recurring_id: str
    weeks: int
    total_amount: Money
    discount_percent: int = 0
    savings: Money = Field(default=0)
    bookings: List[BookingResponse]


class MeetingLinkUpdate(StrictRequestModel):
    meeting_link: str = Field(..., min_length=1, max_length=MAX_MEETING_LINK_LENGTH)

    @field_validator("meeting_link")
    @classmethod
    def _http_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("meeting_link must be an http(s) URL")
        return value


class DisputeRequest(StrictRequestModel):
    reason: str = Field(..., min_length=1, max_length=MAX_DISPUTE_REASON_LENGTH)
