# backend/tutorbook/services/booking_service.py
"""
Booking Service for the Tutorbook platform.

Turns a validated slot selection into persisted bookings:

- single lessons, optionally at the one-time trial price
- recurring series of 1, 2, 4 or 8 weekly lessons sharing a recurring id,
  created in one transaction so a caller sees the full series or an error

Every booking starts confirmed with payment ``pending``; only the payment
processor moves it to ``paid``. An active booking owns its slot: the
service checks for a holder before inserting, and the partial unique index
on bookings turns any race that slips past the check into a conflict.

An unpaid hold is released (cancelled, never deleted) only once no checkout
session can still pay for it. A student holds at most one active trial; a
new trial booking supersedes an unpaid earlier one.
"""

from datetime import date, time, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.constants import MAX_REPORTED_CONFLICTS, SLOT_TAKEN_MESSAGE
from ..core.exceptions import (
    BookingConflictException,
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..core.ulid_helper import generate_ulid
from ..domain.pricing import PriceQuote
from ..domain.scheduling import (
    SchedulingError,
    generate_series_dates,
    lesson_start_utc,
    parse_date_str,
    parse_time_str,
)
from ..models.booking import ACTIVE_TRIAL_INDEX, Booking, BookingStatus, PaymentStatus
from ..models.tutor import TutorProfile
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate, RecurringBookingCreate
from .availability_service import AvailabilityService
from .base import BaseService, Clock
from .payment_sessions import as_utc, close_open_session, session_is_open
from .pricing_service import PricingService
from .trial_service import TrialService
from .tutor_service import TutorService

GENERIC_CONFLICT_MESSAGE = "This time slot conflicts with an existing booking"
SERIES_CONFLICT_MESSAGE = "Some lessons in this series conflict with existing bookings"


class BookingService(BaseService):
    """Create, list and change the lesson status of bookings."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        pending_hold_minutes: Optional[int] = None,
        autocomplete_grace_hours: Optional[int] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock)
        self.config = config or default_settings
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.tutor_service = TutorService(db, clock)
        self.trial_service = TrialService(db, clock)
        self.availability_service = AvailabilityService(db, clock, self.tutor_service)
        self.pricing_service = PricingService(
            db, clock, tutor_service=self.tutor_service, trial_service=self.trial_service
        )
        self.pending_hold = timedelta(
            minutes=(
                pending_hold_minutes
                if pending_hold_minutes is not None
                else self.config.pending_hold_minutes
            )
        )
        self.autocomplete_grace = timedelta(
            hours=(
                autocomplete_grace_hours
                if autocomplete_grace_hours is not None
                else self.config.autocomplete_grace_hours
            )
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(self, student: User, booking_data: BookingCreate) -> Booking:
        """
        Create a single lesson awaiting payment.

        Raises:
            ForbiddenException: the student is suspended
            NotFoundException: the tutor does not exist
            ValidationException: selection missing, malformed, in the past,
                outside availability, or trial requested but already used or
                still being paid for
            BookingConflictException: the slot is already held
        """
        self.log_operation(
            "create_booking",
            student_id=student.id,
            tutor_id=booking_data.tutor_id,
            date=booking_data.date,
            time=booking_data.time,
            use_trial=booking_data.use_trial,
        )
        tutor = self._validate_prerequisites(student, booking_data.tutor_id)
        self.availability_service.ensure_slot_bookable(
            tutor.id, booking_data.date, booking_data.time
        )
        booking_date, start_time = self._parse_slot(booking_data.date, booking_data.time)
        self._ensure_in_future(booking_date, start_time)

        if booking_data.use_trial and not self.trial_service.get_trial_status(student).eligible:
            raise self._trial_not_available(student.id)

        quote = self.pricing_service.price_for(
            tutor,
            student,
            is_recurring=False,
            recurring_weeks=1,
            use_trial=booking_data.use_trial,
            duration_minutes=booking_data.duration,
        )

        try:
            with self.transaction():
                if quote.is_trial:
                    self._supersede_unpaid_trials(student.id)
                self._claim_slots(tutor.id, [booking_date], start_time, student.id)
                booking = self._insert_booking(
                    tutor=tutor,
                    student=student,
                    booking_date=booking_date,
                    start_time=start_time,
                    duration=booking_data.duration,
                    amount=quote.total,
                    is_trial=quote.is_trial,
                )
        except RepositoryException as exc:
            self._raise_conflict_from_repo_error(exc, tutor.id, [booking_date], start_time)

        prometheus_metrics.record_booking_created("trial" if quote.is_trial else "single")
        self.logger.info(
            f"Booking {booking.id} created for {booking_date} {booking_data.time} "
            f"at {quote.total}",
            extra={"booking_id": booking.id, "tutor_id": tutor.id, "student_id": student.id},
        )
        return booking

    @BaseService.measure_operation("create_recurring_series")
    def create_recurring_series(
        self, student: User, series_data: RecurringBookingCreate
    ) -> tuple[List[Booking], PriceQuote]:
        """
        Create ``weeks`` weekly lessons sharing one recurring id.

        All rows are written in one transaction: either every lesson exists
        afterwards or none does. The discounted total is spread over the rows
        so their payment amounts add up to exactly what will be charged.
        """
        self.log_operation(
            "create_recurring_series",
            student_id=student.id,
            tutor_id=series_data.tutor_id,
            start_date=series_data.start_date,
            time=series_data.time,
            weeks=series_data.weeks,
        )
        tutor = self._validate_prerequisites(student, series_data.tutor_id)
        self.availability_service.ensure_slot_bookable(
            tutor.id, series_data.start_date, series_data.time
        )
        first_date, start_time = self._parse_slot(series_data.start_date, series_data.time)
        try:
            dates = generate_series_dates(first_date, series_data.weeks)
        except SchedulingError as exc:
            raise ValidationException(
                str(exc), code="INVALID_RECURRING_WEEKS", details={"weeks": series_data.weeks}
            ) from exc
        self._ensure_in_future(first_date, start_time)

        quote = self.pricing_service.price_for(
            tutor,
            student,
            is_recurring=True,
            recurring_weeks=series_data.weeks,
            use_trial=False,
            duration_minutes=series_data.duration,
        )
        recurring_id = generate_ulid()
        amounts = quote.per_lesson_amounts

        try:
            with self.transaction():
                self._claim_slots(tutor.id, dates, start_time, student.id)
                bookings = [
                    self._insert_booking(
                        tutor=tutor,
                        student=student,
                        booking_date=lesson_date,
                        start_time=start_time,
                        duration=series_data.duration,
                        amount=amounts[index],
                        is_trial=False,
                        recurring_id=recurring_id,
                        recurring_index=index + 1,
                        recurring_total=len(dates),
                    )
                    for index, lesson_date in enumerate(dates)
                ]
        except RepositoryException as exc:
            self._raise_conflict_from_repo_error(exc, tutor.id, dates, start_time)

        prometheus_metrics.record_booking_created("recurring", len(bookings))
        self.logger.info(
            f"Recurring series {recurring_id} created with {len(bookings)} lessons "
            f"totalling {quote.total}",
            extra={"recurring_id": recurring_id, "tutor_id": tutor.id, "student_id": student.id},
        )
        return bookings, quote

    def _validate_prerequisites(self, student: User, tutor_id: str) -> TutorProfile:
        if student.is_suspended:
            raise ForbiddenException(
                "Your account is suspended and cannot make bookings",
                code="ACCOUNT_SUSPENDED",
            )
        tutor = self.tutor_service.get_tutor(tutor_id)
        if tutor.user_id is not None and tutor.user_id == student.id:
            raise ValidationException("You cannot book a lesson with yourself", code="SELF_BOOKING")
        return tutor

    @staticmethod
    def _parse_slot(raw_date: Optional[str], raw_time: Optional[str]) -> tuple[date, time]:
        try:
            return parse_date_str(raw_date or ""), parse_time_str(raw_time or "")
        except SchedulingError as exc:
            raise ValidationException(str(exc), code="INVALID_BOOKING_TIME") from exc

    def _ensure_in_future(self, booking_date: date, start_time: time) -> None:
        if lesson_start_utc(booking_date, start_time) <= self.now():
            raise ValidationException(
                "Cannot book a lesson in the past",
                code="BOOKING_IN_PAST",
                details={"date": booking_date.isoformat(), "time": start_time.strftime("%H:%M")},
            )

    def _claim_slots(
        self, tutor_id: str, dates: Sequence[date], start_time: time, student_id: str
    ) -> None:
        """
        Make sure nobody else holds the slots; raise with the first few conflicts otherwise.

        Unpaid holds that outlived the hold window are released first, as are
        the caller's own unpaid single-lesson holds for the same slot.
        """
        holders = self.repository.find_active_conflicts(tutor_id, dates, start_time)
        remaining = [b for b in holders if not self._release_if_abandoned(b, student_id)]
        if not remaining:
            return

        conflicts = [
            {"date": b.booking_date.isoformat(), "time": start_time.strftime("%H:%M")}
            for b in remaining[:MAX_REPORTED_CONFLICTS]
        ]
        message = SLOT_TAKEN_MESSAGE if len(dates) == 1 else SERIES_CONFLICT_MESSAGE
        raise BookingConflictException(
            message,
            conflicts=conflicts,
            details={"tutor_id": tutor_id, "conflict_count": len(remaining)},
        )

    def _release_if_abandoned(self, holder: Booking, student_id: str) -> bool:
        """
        Release ``holder`` (and the rest of its series) when nobody can pay for it anymore.

        A hold is stale once it outlived the hold window and no checkout
        session for it is still open. The caller's own unpaid single lesson
        is released on rebooking after its open session, if any, has been
        expired with Stripe. A session Stripe refuses to expire keeps the hold.
        """
        # already released together with an earlier row of its series
        if holder.status == BookingStatus.CANCELLED.value:
            return True
        if holder.payment_status != PaymentStatus.PENDING.value:
            return False

        now = self.now()
        series = self.repository.get_series(holder.recurring_id) if holder.recurring_id else [holder]
        if any(row.payment_status == PaymentStatus.PAID.value for row in series):
            return False
        doomed = [row for row in series if row.status != BookingStatus.CANCELLED.value]

        created_at = as_utc(holder.created_at)
        checkout_open = any(session_is_open(row, now) for row in doomed)
        stale = (
            created_at is not None
            and now - created_at >= self.pending_hold
            and not checkout_open
        )
        own_single = holder.student_id == student_id and holder.recurring_id is None
        if not (stale or own_single):
            return False
        if not close_open_session(doomed, now, self.config):
            return False

        for row in doomed:
            row.release_hold(now)
        self.repository.flush()
        self.log_operation(
            "release_abandoned_hold",
            booking_id=holder.id,
            recurring_id=holder.recurring_id,
            released=len(doomed),
            reason="stale" if stale else "rebooked",
        )
        return True

    def _supersede_unpaid_trials(self, student_id: str) -> None:
        """Release the student's unpaid trial so the new one is the only active trial."""
        now = self.now()
        trials = self.repository.get_active_trials(student_id)
        for trial in trials:
            if trial.payment_status != PaymentStatus.PENDING.value:
                raise self._trial_not_available(student_id)
            if not close_open_session([trial], now, self.config):
                raise self._trial_not_available(
                    student_id, "A trial lesson payment is already in progress"
                )
            trial.release_hold(now)
            self.log_operation(
                "release_abandoned_hold", booking_id=trial.id, released=1, reason="trial_replaced"
            )
        if trials:
            self.repository.flush()

    @staticmethod
    def _trial_not_available(
        student_id: str, message: str = "Trial lesson has already been used"
    ) -> ValidationException:
        return ValidationException(
            message, code="TRIAL_NOT_AVAILABLE", details={"student_id": student_id}
        )

    def _insert_booking(
        self,
        *,
        tutor: TutorProfile,
        student: User,
        booking_date: date,
        start_time: time,
        duration: int,
        amount: Decimal,
        is_trial: bool,
        recurring_id: Optional[str] = None,
        recurring_index: Optional[int] = None,
        recurring_total: Optional[int] = None,
    ) -> Booking:
        return self.repository.create(
            tutor_id=tutor.id,
            student_id=student.id,
            booking_date=booking_date,
            start_time=start_time,
            duration_minutes=duration,
            hourly_rate=tutor.hourly_rate,
            payment_amount=amount,
            payment_status=PaymentStatus.PENDING.value,
            status=BookingStatus.CONFIRMED.value,
            is_trial=is_trial,
            recurring_id=recurring_id,
            recurring_index=recurring_index,
            recurring_total=recurring_total,
            created_at=self.now(),
        )

    def _raise_conflict_from_repo_error(
        self,
        exc: RepositoryException,
        tutor_id: str,
        dates: Sequence[date],
        start_time: time,
    ) -> None:
        """Translate a unique-index violation into a booking conflict."""
        cause = exc.__cause__
        if isinstance(cause, IntegrityError):
            violation = str(cause.orig)
            # SQLite names the columns, PostgreSQL names the index
            if ACTIVE_TRIAL_INDEX in violation or "bookings.student_id" in violation:
                raise ValidationException(
                    "Only one trial lesson can be booked at a time", code="TRIAL_NOT_AVAILABLE"
                ) from exc
            raise BookingConflictException(
                GENERIC_CONFLICT_MESSAGE,
                conflicts=[
                    {"date": d.isoformat(), "time": start_time.strftime("%H:%M")}
                    for d in list(dates)[:MAX_REPORTED_CONFLICTS]
                ],
                details={"tutor_id": tutor_id},
            ) from exc
        raise exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def get_booking_for_participant(self, booking_id: str, user: User) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking.is_participant(user.id, self.tutor_service.tutor_user_id(booking.tutor_id)):
            raise ForbiddenException("You do not have access to this booking")
        return booking

    @BaseService.measure_operation("list_student_bookings")
    def list_student_bookings(self, student: User) -> List[Booking]:
        return self.repository.get_for_student(student.id)

    @BaseService.measure_operation("list_tutor_bookings")
    def list_tutor_bookings(self, user: User) -> List[Booking]:
        tutor = self.tutor_service.get_tutor_for_user(user)
        return self.repository.get_for_tutor(tutor.id)

    def get_series(self, recurring_id: str, user: User) -> List[Booking]:
        bookings = self.repository.get_series(recurring_id)
        if not bookings:
            raise NotFoundException(
                "Recurring series not found",
                code="SERIES_NOT_FOUND",
                details={"recurring_id": recurring_id},
            )
        first = bookings[0]
        if not first.is_participant(user.id, self.tutor_service.tutor_user_id(first.tutor_id)):
            raise ForbiddenException("You do not have access to this recurring series")
        return bookings

    # ------------------------------------------------------------------
    # Lesson status changes
    # ------------------------------------------------------------------

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, user: User) -> Booking:
        """
        Cancel a confirmed lesson before it starts (student or tutor).

        The slot becomes bookable again immediately. Payment status is left
        as it is; refunds are handled with the payment processor.
        """
        booking = self.get_booking_for_participant(booking_id, user)
        if booking.status != BookingStatus.CONFIRMED.value:
            raise ConflictException(
                f"Booking cannot be cancelled while {booking.status}",
                code="BOOKING_NOT_CANCELLABLE",
                details={"status": booking.status},
            )
        now = self.now()
        if booking.has_started(now):
            raise BusinessRuleException(
                "Lessons can only be cancelled before they start",
                code="CANCELLATION_WINDOW_CLOSED",
            )

        with self.transaction():
            booking.cancel(user.id, now)
        self.log_operation("cancel_booking", booking_id=booking.id, cancelled_by=user.id)
        return booking

    @BaseService.measure_operation("cancel_series")
    def cancel_series(self, recurring_id: str, user: User) -> List[Booking]:
        """Student cancels every lesson of a series that has not started yet."""
        bookings = self.get_series(recurring_id, user)
        if bookings[0].student_id != user.id:
            raise ForbiddenException("Only the student can cancel a recurring series")

        now = self.now()
        cancellable = [b for b in bookings if b.is_cancellable and not b.has_started(now)]
        if not cancellable:
            raise ConflictException(
                "No upcoming lessons left to cancel in this series",
                code="SERIES_NOT_CANCELLABLE",
            )
        with self.transaction():
            for booking in cancellable:
                booking.cancel(user.id, now)
        self.log_operation(
            "cancel_series", recurring_id=recurring_id, cancelled=len(cancellable)
        )
        return bookings

    @BaseService.measure_operation("update_meeting_link")
    def update_meeting_link(self, booking_id: str, user: User, meeting_link: str) -> Booking:
        booking = self.get_booking(booking_id)
        tutor = self.tutor_service.find_tutor_for_user(user)
        if tutor is None or tutor.id != booking.tutor_id:
            raise ForbiddenException("Only the tutor can set the meeting link")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ConflictException(
                "Cannot set a meeting link on a cancelled booking", code="BOOKING_CANCELLED"
            )
        with self.transaction():
            booking.meeting_link = meeting_link
        self.log_operation("update_meeting_link", booking_id=booking.id)
        return booking

    @BaseService.measure_operation("dispute_booking")
    def dispute_booking(self, booking_id: str, user: User, reason: str) -> Booking:
        """Student disputes a paid lesson that was not cancelled."""
        booking = self.get_booking(booking_id)
        if booking.student_id != user.id:
            raise ForbiddenException("Only the student can dispute a lesson")
        if booking.status == BookingStatus.DISPUTED.value:
            raise ConflictException("This lesson is already disputed", code="ALREADY_DISPUTED")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ConflictException(
                "Cancelled lessons cannot be disputed", code="BOOKING_CANCELLED"
            )
        if not booking.is_paid:
            raise BusinessRuleException(
                "Only paid lessons can be disputed", code="BOOKING_NOT_PAID"
            )
        with self.transaction():
            booking.dispute(reason.strip(), self.now())
        self.log_operation("dispute_booking", booking_id=booking.id, student_id=user.id)
        return booking

    @BaseService.measure_operation("auto_complete_lessons")
    def auto_complete_lessons(self) -> int:
        """Mark paid, confirmed lessons as completed once the grace period has passed."""
        now = self.now()
        bookings = self.repository.get_completable(now - self.autocomplete_grace)
        if not bookings:
            return 0
        with self.transaction():
            for booking in bookings:
                booking.complete(now)
        self.log_operation("auto_complete_lessons", completed=len(bookings))
        return len(bookings)

