# backend/tutorbook/services/trial_service.py
"""Trial lesson eligibility: one discounted single lesson per student."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock


@dataclass(frozen=True)
class TrialStatus:
    eligible: bool
    has_used_trial: bool
    trial_price: Decimal


class TrialService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        trial_price: Optional[Decimal] = None,
    ):
        super().__init__(db, clock)
        self.trial_price = trial_price if trial_price is not None else settings.trial_price
        self.user_repository = RepositoryFactory.create_user_repository(db)

    def get_trial_status(self, user: User) -> TrialStatus:
        return TrialStatus(
            eligible=user.trial_eligible,
            has_used_trial=not user.trial_eligible,
            trial_price=self.trial_price,
        )

    def mark_trial_used(self, user_id: str) -> bool:
        """
        Consume the student's trial. Does NOT commit.

        Returns False when the user is unknown or the trial was already used.
        """
        user = self.user_repository.get_by_id(user_id)
        if user is None or user.has_used_trial:
            return False
        user.has_used_trial = True
        user.trial_used_at = self.now()
        self.log_operation("mark_trial_used", user_id=user_id)
        return True
