# backend/tutorbook/services/availability_service.py
"""
Availability Service for the Tutorbook platform.

Reads and replaces a tutor's weekly UTC availability and answers the
question "can this (date, time) be booked". All stored times are UTC;
conversion to a viewer's zone happens only for display.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

import pytz
from sqlalchemy.orm import Session

from ..core.constants import DEFAULT_TIMEZONE
from ..core.exceptions import SlotUnavailableException, ValidationException
from ..domain.scheduling import (
    AvailabilityMap,
    SchedulingError,
    SelectionMissingError,
    is_slot_bookable,
    lesson_start_utc,
    local_display,
    normalize_availability,
    parse_date_str,
    parse_time_str,
    slots_for_date,
    weekday_of,
)
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock
from .tutor_service import TutorService


@dataclass(frozen=True)
class TutorAvailability:
    """Public availability view of a tutor."""

    tutor_id: str
    tutor_name: Optional[str]
    hourly_rate: Optional[Decimal]
    timezone: str
    availability: AvailabilityMap = field(default_factory=dict)


@dataclass(frozen=True)
class BookableSlot:
    time: str
    local_date: str
    local_time: str


class AvailabilityService(BaseService):
    """Weekly availability reads, replacement and slot validation."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        tutor_service: Optional[TutorService] = None,
    ):
        super().__init__(db, clock)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.tutor_service = tutor_service or TutorService(db, clock)

    def get_availability(self, tutor_id: str) -> AvailabilityMap:
        """Canonical weekday map; an unknown tutor yields an empty mapping."""
        if self.tutor_service.find_tutor(tutor_id) is None:
            return {}
        return normalize_availability(self.availability_repository.get_weekly_map(tutor_id))

    @BaseService.measure_operation("get_tutor_availability")
    def get_tutor_availability(self, tutor_id: str) -> TutorAvailability:
        tutor = self.tutor_service.find_tutor(tutor_id)
        if tutor is None:
            self.logger.info(f"Availability requested for unknown tutor {tutor_id}")
            return TutorAvailability(
                tutor_id=tutor_id, tutor_name=None, hourly_rate=None, timezone=DEFAULT_TIMEZONE
            )
        return TutorAvailability(
            tutor_id=tutor.id,
            tutor_name=tutor.name,
            hourly_rate=tutor.hourly_rate,
            timezone=tutor.timezone or DEFAULT_TIMEZONE,
            availability=normalize_availability(
                self.availability_repository.get_weekly_map(tutor.id)
            ),
        )

    @BaseService.measure_operation("get_bookable_slots")
    def get_bookable_slots(
        self, tutor_id: str, booking_date: str, viewer_timezone: Optional[str]
    ) -> List[BookableSlot]:
        """
        Open slots on one date, shown in the viewer's zone.

        Slots already held by an active booking and slots that have already
        started are left out.
        """
        try:
            day = parse_date_str(booking_date)
        except SchedulingError as exc:
            raise ValidationException(str(exc), code="INVALID_BOOKING_DATE") from exc

        availability = self.get_availability(tutor_id)
        if not availability:
            return []

        taken = self.booking_repository.get_booked_times(tutor_id, day)
        now = self.now()
        slots: List[BookableSlot] = []
        for slot_time in slots_for_date(availability, day):
            if slot_time in taken or lesson_start_utc(day, slot_time) <= now:
                continue
            display = local_display(day, slot_time, viewer_timezone)
            slots.append(
                BookableSlot(
                    time=slot_time, local_date=display.date.isoformat(), local_time=display.time
                )
            )
        return slots

    def ensure_slot_bookable(
        self, tutor_id: str, booking_date: Optional[str], start_time: Optional[str]
    ) -> None:
        """
        Raise unless ``start_time`` is listed for the weekday of ``booking_date``.

        Raises:
            ValidationException: date or time missing or malformed
            SlotUnavailableException: time not offered on that weekday
        """
        try:
            if booking_date and start_time:
                parse_time_str(start_time)
            bookable = is_slot_bookable(
                self.get_availability(tutor_id), booking_date, start_time
            )
        except SelectionMissingError as exc:
            raise ValidationException(str(exc), code="SELECTION_REQUIRED") from exc
        except SchedulingError as exc:
            raise ValidationException(str(exc), code="INVALID_BOOKING_DATE") from exc

        if not bookable:
            raise SlotUnavailableException(
                booking_date=str(booking_date),
                start_time=str(start_time),
                weekday=weekday_of(str(booking_date)),
            )

    @BaseService.measure_operation("get_own_availability")
    def get_own_availability(self, user: User) -> TutorAvailability:
        """The signed-in tutor's map with all seven days present."""
        tutor = self.tutor_service.get_tutor_for_user(user)
        return TutorAvailability(
            tutor_id=tutor.id,
            tutor_name=tutor.name,
            hourly_rate=tutor.hourly_rate,
            timezone=tutor.timezone or DEFAULT_TIMEZONE,
            availability=normalize_availability(
                self.availability_repository.get_weekly_map(tutor.id), include_empty_days=True
            ),
        )

    @BaseService.measure_operation("replace_availability")
    def replace_availability(
        self,
        user: User,
        availability: Dict[str, List[str]],
        timezone_name: Optional[str] = None,
    ) -> TutorAvailability:
        """
        Replace the signed-in tutor's weekly availability wholesale.

        Times are UTC ``HH:MM``; duplicates collapse. Existing bookings are not
        touched, they stand on their own once created.
        """
        tutor = self.tutor_service.get_tutor_for_user(user)
        try:
            normalized = normalize_availability(availability)
        except SchedulingError as exc:
            raise ValidationException(str(exc), code="INVALID_AVAILABILITY") from exc

        if timezone_name is not None and timezone_name not in pytz.all_timezones_set:
            raise ValidationException(
                f"Unknown timezone '{timezone_name}'",
                code="INVALID_TIMEZONE",
                details={"timezone": timezone_name},
            )

        with self.transaction():
            count = self.availability_repository.replace_weekly_map(tutor.id, normalized)
            if timezone_name is not None:
                tutor.timezone = timezone_name

        self.log_operation("replace_availability", tutor_id=tutor.id, slot_count=count)
        return self.get_own_availability(user)

