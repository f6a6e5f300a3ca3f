"""User-facing trial status."""

from ..services.trial_service import TrialStatus
from ._strict_base import ApiModel, Money


class TrialStatusResponse(ApiModel):
    eligible: bool
    has_used_trial: bool
    trial_price: Money

    @classmethod
    def from_status(cls, status: TrialStatus) -> "TrialStatusResponse":
        return cls(
            eligible=status.eligible,
            has_used_trial=status.has_used_trial,
            trial_price=status.trial_price,
        )
