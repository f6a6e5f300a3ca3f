# backend/tutorbook/routes/users.py
"""
User routes.

Endpoints:
    GET /users/trial-status - Trial lesson eligibility and price
"""

from fastapi import APIRouter, Depends

from ..api.dependencies.auth import get_current_user
from ..api.dependencies.services import get_trial_service
from ..models.user import User
from ..schemas.user import TrialStatusResponse
from ..services.trial_service import TrialService

router = APIRouter(tags=["users"])


@router.get("/users/trial-status", response_model=TrialStatusResponse)
async def get_trial_status(
    current_user: User = Depends(get_current_user),
    trial_service: TrialService = Depends(get_trial_service),
) -> TrialStatusResponse:
    return TrialStatusResponse.from_status(trial_service.get_trial_status(current_user))
