"""Price quotes for booking requests."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..domain.pricing import PriceQuote, PricingError, compute_price
from ..models.tutor import TutorProfile
from ..models.user import User
from .base import BaseService, Clock
from .trial_service import TrialService
from .tutor_service import TutorService


class PricingService(BaseService):
    """Compute what a student will be charged for a booking request."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        tutor_service: Optional[TutorService] = None,
        trial_service: Optional[TrialService] = None,
    ) -> None:
        super().__init__(db, clock)
        self.tutor_service = tutor_service or TutorService(db, clock)
        self.trial_service = trial_service or TrialService(db, clock)

    def price_for(
        self,
        tutor: TutorProfile,
        student: User,
        *,
        is_recurring: bool,
        recurring_weeks: int,
        use_trial: bool,
        duration_minutes: int,
    ) -> PriceQuote:
        trial = self.trial_service.get_trial_status(student)
        try:
            return compute_price(
                tutor.hourly_rate,
                is_recurring=is_recurring,
                recurring_weeks=recurring_weeks,
                use_trial=use_trial,
                trial_eligible=trial.eligible,
                trial_price=trial.trial_price,
                duration_minutes=duration_minutes,
            )
        except PricingError as exc:
            raise ValidationException(
                str(exc),
                code="INVALID_PRICING_INPUT",
                details={"tutor_id": tutor.id, "recurring_weeks": recurring_weeks},
            ) from exc

    @BaseService.measure_operation("pricing.quote")
    def quote(
        self,
        student: User,
        tutor_id: str,
        *,
        is_recurring: bool = False,
        recurring_weeks: int = 1,
        use_trial: bool = False,
        duration_minutes: int = 60,
    ) -> PriceQuote:
        tutor = self.tutor_service.get_tutor(tutor_id)
        return self.price_for(
            tutor,
            student,
            is_recurring=is_recurring,
            recurring_weeks=recurring_weeks,
            use_trial=use_trial and not is_recurring,
            duration_minutes=duration_minutes,
        )
