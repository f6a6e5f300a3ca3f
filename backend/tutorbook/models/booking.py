# backend/tutorbook/models/booking.py
"""
Booking model for the Tutorbook platform.

A booking is one scheduled lesson between a student and a tutor. It carries
two independent state axes:

- payment status: ``pending`` until the payment processor confirms the
  charge (``paid``) or reports that it never happened (``failed``); a
  payment that lands after the hold was released is sent back (``refunded``)
- lesson status: ``confirmed`` at creation, later ``cancelled``,
  ``completed`` or ``disputed``

Date and time are stored in UTC. An active booking (any status other than
``cancelled``) owns its (tutor, date, time) slot; the partial unique index
below makes a second active booking for the same slot impossible. A second
index allows each student at most one active trial lesson.
"""

from datetime import date, datetime, time, timezone
from enum import Enum
import logging
from typing import Any, Optional, cast

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.constants import DEFAULT_LESSON_MINUTES
from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)

ACTIVE_TRIAL_INDEX = "uq_bookings_student_active_trial"


class BookingStatus(str, Enum):
    """Lesson lifecycle statuses."""

    CONFIRMED = "confirmed"  # Default on creation
    CANCELLED = "cancelled"  # Student, tutor or failed payment
    COMPLETED = "completed"  # Lesson took place
    DISPUTED = "disputed"  # Student raised a dispute after the lesson


class PaymentStatus(str, Enum):
    """Money capture statuses, driven only by the payment processor."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"  # Paid after the hold was released


class Booking(Base):
    """
    One lesson between a student and a tutor.

    ``payment_amount`` is what this row actually costs the student: the trial
    price for a trial lesson, the per-lesson share of the discounted total for
    a recurring series, and the prorated hourly rate otherwise.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    tutor_id = Column(String(26), ForeignKey("tutor_profiles.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=DEFAULT_LESSON_MINUTES)
    hourly_rate = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_amount = Column(Numeric(10, 2), nullable=False)
    is_trial = Column(Boolean, nullable=False, default=False)

    # Recurring series linkage
    recurring_id = Column(String(26), nullable=True, index=True)
    recurring_index = Column(Integer, nullable=True)
    recurring_total = Column(Integer, nullable=True)

    # Payment processor references
    stripe_session_id = Column(String(255), nullable=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    checkout_expires_at = Column(DateTime(timezone=True), nullable=True)

    meeting_link = Column(String(500), nullable=True)
    review_completed = Column(Boolean, nullable=False, default=False)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    dispute_reason = Column(Text, nullable=True)
    disputed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tutor = relationship("TutorProfile", backref="bookings")
    student = relationship("User", foreign_keys=[student_id], backref="student_bookings")
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed', 'disputed')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("payment_amount >= 0", name="check_payment_non_negative"),
        CheckConstraint("hourly_rate > 0", name="check_rate_positive"),
        Index(
            "uq_bookings_active_tutor_slot",
            "tutor_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index(
            ACTIVE_TRIAL_INDEX,
            "student_id",
            unique=True,
            postgresql_where=text("is_trial AND status <> 'cancelled'"),
            sqlite_where=text("is_trial = 1 AND status <> 'cancelled'"),
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize as a confirmed lesson awaiting payment."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.CONFIRMED.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.PENDING.value
        if self.is_trial is None:
            self.is_trial = False
        if self.review_completed is None:
            self.review_completed = False
        if not self.duration_minutes:
            self.duration_minutes = DEFAULT_LESSON_MINUTES
        logger.info(
            f"Creating booking for student {self.student_id} with tutor {self.tutor_id}"
        )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: student={self.student_id}, tutor={self.tutor_id}, "
            f"date={self.booking_date}, time={self.start_time}, status={self.status}, "
            f"payment={self.payment_status}>"
        )

    @property
    def start_utc(self) -> datetime:
        """Timezone-aware UTC start of the lesson."""
        return datetime.combine(
            cast(date, self.booking_date), cast(time, self.start_time), tzinfo=timezone.utc
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def is_cancellable(self) -> bool:
        return self.status == BookingStatus.CONFIRMED.value

    def has_started(self, now: datetime) -> bool:
        return now >= self.start_utc

    def is_participant(self, user_id: str, tutor_user_id: Optional[str]) -> bool:
        return user_id == self.student_id or (
            tutor_user_id is not None and user_id == tutor_user_id
        )

    def mark_paid(self, payment_intent_id: Optional[str], paid_at: datetime) -> None:
        self.payment_status = PaymentStatus.PAID.value
        self.stripe_payment_intent_id = payment_intent_id or self.stripe_payment_intent_id
        self.paid_at = paid_at
        logger.info(f"Booking {self.id} marked as paid")

    def mark_payment_failed(self, now: datetime) -> None:
        """A failed or expired payment releases the slot."""
        self.payment_status = PaymentStatus.FAILED.value
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        logger.info(f"Booking {self.id} payment failed, slot released")

    def cancel(self, cancelled_by_user_id: str, now: datetime) -> None:
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        self.cancelled_by_id = cancelled_by_user_id
        logger.info(f"Booking {self.id} cancelled by user {cancelled_by_user_id}")

    def complete(self, now: datetime) -> None:
        self.status = BookingStatus.COMPLETED.value
        self.completed_at = now
        logger.info(f"Booking {self.id} marked as completed")

    def dispute(self, reason: str, now: datetime) -> None:
        self.status = BookingStatus.DISPUTED.value
        self.dispute_reason = reason
        self.disputed_at = now
        logger.info(f"Booking {self.id} disputed")

    def release_hold(self, now: datetime) -> None:
        """Give up an unpaid hold so its slot can be booked again."""
        self.payment_status = PaymentStatus.FAILED.value
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        logger.info(f"Booking {self.id} unpaid hold released")

    def mark_refunded(self, payment_intent_id: Optional[str], now: datetime) -> None:
        """Record a payment that arrived for a released hold and was returned."""
        self.payment_status = PaymentStatus.REFUNDED.value
        self.stripe_payment_intent_id = payment_intent_id or self.stripe_payment_intent_id
        self.paid_at = now
        logger.warning(f"Booking {self.id} was paid after release, payment refunded")
