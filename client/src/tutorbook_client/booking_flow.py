"""
State of the lesson booking dialog.

Mirrors what the student sees while booking: the tutor's weekly slots, the
selected date and time, the recurring and trial toggles and the live price.
Pricing and slot rules come from the same functions the API applies, so the
quoted total is exactly what the server will charge.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any

from tutorbook.core.constants import (
    AVAILABILITY_LOAD_FAILED_MESSAGE,
    DEFAULT_LESSON_MINUTES,
    RECURRING_WEEK_OPTIONS,
    SLOT_UNAVAILABLE_MESSAGE,
)
from tutorbook.domain.pricing import PriceQuote, compute_price
from tutorbook.domain.scheduling import (
    AvailabilityMap,
    SchedulingError,
    is_slot_bookable,
    local_display,
    normalize_availability,
    slots_for_date,
)

from .client import TutorbookClient
from .errors import ClientError

logger = logging.getLogger(__name__)

DEFAULT_RECURRING_WEEKS = 4


@dataclass(frozen=True)
class TrialState:
    eligible: bool = False
    has_used_trial: bool = False
    trial_price: Decimal = Decimal("5")


class BookingFlow:
    """Booking dialog state for one tutor."""

    def __init__(
        self,
        client: TutorbookClient,
        tutor_id: str,
        *,
        hourly_rate: Decimal | int | str | None = None,
        viewer_timezone: str | None = None,
    ) -> None:
        self.client = client
        self.tutor_id = tutor_id
        self.hourly_rate = Decimal(str(hourly_rate)) if hourly_rate is not None else None
        self.viewer_timezone = viewer_timezone

        self.availability: AvailabilityMap = {}
        self.trial = TrialState()
        self.selected_date: str | None = None
        self.selected_time: str | None = None
        self.is_recurring = False
        self.recurring_weeks = DEFAULT_RECURRING_WEEKS
        self.use_trial = False

        self.is_loading = False
        self.is_submitting = False
        self.error: str | None = None

    async def load(self) -> None:
        """
        Fetch availability and trial status.

        Both are soft failures: the dialog stays usable with an empty
        availability map (and an error message) or with the trial disabled.
        """
        self.is_loading = True
        try:
            try:
                data = await self.client.get_tutor_availability(self.tutor_id)
                self.availability = normalize_availability(data.get("availability") or {})
                if self.hourly_rate is None and data.get("hourlyRate") is not None:
                    self.hourly_rate = Decimal(str(data["hourlyRate"]))
            except (ClientError, SchedulingError) as exc:
                logger.warning(f"Availability for tutor {self.tutor_id} unavailable: {exc}")
                self.availability = {}
                self.error = AVAILABILITY_LOAD_FAILED_MESSAGE

            try:
                status = await self.client.get_trial_status()
                self.trial = TrialState(
                    eligible=bool(status.get("eligible")),
                    has_used_trial=bool(status.get("hasUsedTrial")),
                    trial_price=Decimal(str(status.get("trialPrice", "5"))),
                )
            except ClientError as exc:
                logger.warning(f"Trial status unavailable: {exc}")
                self.trial = TrialState()
                self.use_trial = False
        finally:
            self.is_loading = False

    # Selection

    def select_date(self, booking_date: str) -> None:
        self.selected_date = booking_date
        self.selected_time = None
        self.error = None

    def select_time(self, start_time: str) -> None:
        self.selected_time = start_time
        self.error = None

    def available_slots(self) -> list[str]:
        """UTC slots for the selected date; empty until a date is picked."""
        if not self.selected_date:
            return []
        return slots_for_date(self.availability, self.selected_date)

    def slot_label(self, start_time: str) -> str:
        """12-hour label of a UTC slot on the selected date in the viewer's zone."""
        if not self.selected_date:
            return start_time
        return str(local_display(self.selected_date, start_time, self.viewer_timezone))

    # Toggles

    def set_recurring(self, enabled: bool) -> None:
        """Switching to recurring turns the trial off in the same step."""
        self.is_recurring = enabled
        if enabled:
            self.use_trial = False

    def set_recurring_weeks(self, weeks: int) -> None:
        if weeks not in RECURRING_WEEK_OPTIONS:
            raise ValueError(f"weeks must be one of {RECURRING_WEEK_OPTIONS}")
        self.recurring_weeks = weeks

    def set_use_trial(self, enabled: bool) -> bool:
        """Turn the trial on or off; refused while recurring or when not eligible."""
        if enabled and (self.is_recurring or not self.trial.eligible):
            return False
        self.use_trial = enabled
        return True

    # Price

    def quote(self) -> PriceQuote | None:
        if self.hourly_rate is None:
            return None
        return compute_price(
            self.hourly_rate,
            is_recurring=self.is_recurring,
            recurring_weeks=self.recurring_weeks if self.is_recurring else 1,
            use_trial=self.use_trial,
            trial_eligible=self.trial.eligible,
            trial_price=self.trial.trial_price,
        )

    # Submit

    def validate_selection(self) -> str | None:
        """User-facing message for an invalid selection, or None when it can be booked."""
        try:
            if not is_slot_bookable(self.availability, self.selected_date, self.selected_time):
                return SLOT_UNAVAILABLE_MESSAGE
        except SchedulingError as exc:
            return str(exc)
        return None

    async def submit(self) -> dict[str, Any] | None:
        """
        Create the booking (or series) and open its payment session.

        Returns the checkout session (``sessionId``, ``url``, ``amount``) or
        None with ``error`` set. Failures are not retried.
        """
        if self.is_submitting:
            return None
        self.error = self.validate_selection()
        if self.error:
            return None

        assert self.selected_date is not None and self.selected_time is not None
        self.is_submitting = True
        try:
            if self.is_recurring:
                series = await self.client.create_recurring_booking(
                    self.tutor_id,
                    self.selected_date,
                    self.selected_time,
                    self.recurring_weeks,
                    duration=DEFAULT_LESSON_MINUTES,
                )
                first = series["bookings"][0]
                return await self.client.create_checkout_session(
                    first["id"],
                    recurring_id=series["recurringId"],
                    is_recurring=True,
                    recurring_weeks=self.recurring_weeks,
                )

            booking = await self.client.create_booking(
                self.tutor_id,
                self.selected_date,
                self.selected_time,
                duration=DEFAULT_LESSON_MINUTES,
                use_trial=self.use_trial,
            )
            return await self.client.create_checkout_session(
                booking["id"], use_trial=bool(booking.get("isTrial"))
            )
        except ClientError as exc:
            self.error = exc.message
            return None
        finally:
            self.is_submitting = False
