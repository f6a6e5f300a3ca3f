# backend/tutorbook/repositories/booking_repository.py
"""
Booking repository.

Queries for slot occupancy, recurring series and per-user listings. An
"active" booking is any booking whose lesson status is not ``cancelled``;
only active bookings occupy a slot.
"""

from datetime import date, datetime, time
from typing import Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..domain.scheduling import format_time
from ..models.booking import Booking, BookingStatus, PaymentStatus
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    """Data access for bookings."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _active(self):
        return self.db.query(Booking).filter(Booking.status != BookingStatus.CANCELLED.value)

    def find_active_conflicts(
        self, tutor_id: str, dates: Iterable[date], start_time: time
    ) -> List[Booking]:
        """Active bookings at ``start_time`` on any of ``dates``."""
        date_list = list(dates)
        if not date_list:
            return []
        try:
            return (
                self._active()
                .filter(
                    Booking.tutor_id == tutor_id,
                    Booking.booking_date.in_(date_list),
                    Booking.start_time == start_time,
                )
                .order_by(Booking.booking_date)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding booking conflicts: {str(e)}")
            raise RepositoryException(f"Failed to find conflicts: {str(e)}") from e

    def get_booked_times(self, tutor_id: str, booking_date: date) -> Set[str]:
        """``HH:MM`` start times already taken on ``booking_date``."""
        try:
            rows = (
                self._active()
                .with_entities(Booking.start_time)
                .filter(Booking.tutor_id == tutor_id, Booking.booking_date == booking_date)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading booked times: {str(e)}")
            raise RepositoryException(f"Failed to load booked times: {str(e)}") from e
        return {format_time(row[0]) for row in rows}

    def get_series(self, recurring_id: str) -> List[Booking]:
        """Every booking of a recurring series, in lesson order."""
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.recurring_id == recurring_id)
                .order_by(Booking.recurring_index, Booking.booking_date)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading series {recurring_id}: {str(e)}")
            raise RepositoryException(f"Failed to load recurring series: {str(e)}") from e

    def get_active_trials(self, student_id: str) -> List[Booking]:
        """The student's trial lessons that still hold a slot."""
        try:
            return (
                self._active()
                .filter(Booking.student_id == student_id, Booking.is_trial.is_(True))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading active trials for {student_id}: {str(e)}")
            raise RepositoryException(f"Failed to load trial bookings: {str(e)}") from e

    def get_by_session_id(self, session_id: str) -> List[Booking]:
        return self.find_by(stripe_session_id=session_id)

    def get_for_student(self, student_id: str) -> List[Booking]:
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.student_id == student_id)
                .order_by(Booking.booking_date.desc(), Booking.start_time.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading student bookings: {str(e)}")
            raise RepositoryException(f"Failed to load bookings: {str(e)}") from e

    def get_for_tutor(self, tutor_id: str) -> List[Booking]:
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.tutor_id == tutor_id)
                .order_by(Booking.booking_date.desc(), Booking.start_time.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading tutor bookings: {str(e)}")
            raise RepositoryException(f"Failed to load bookings: {str(e)}") from e

    def get_completable(self, cutoff: datetime) -> List[Booking]:
        """Paid, confirmed lessons that started before ``cutoff``."""
        try:
            candidates = (
                self.db.query(Booking)
                .filter(
                    Booking.status == BookingStatus.CONFIRMED.value,
                    Booking.payment_status == PaymentStatus.PAID.value,
                    Booking.booking_date <= cutoff.date(),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading completable bookings: {str(e)}")
            raise RepositoryException(f"Failed to load bookings: {str(e)}") from e
        return [booking for booking in candidates if booking.start_utc < cutoff]
