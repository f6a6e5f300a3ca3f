# backend/tutorbook/routes/pricing.py
"""
Pricing routes.

Endpoints:
    POST /pricing/quote - Price of a single, trial or recurring booking request
"""

import asyncio

from fastapi import APIRouter, Body, Depends

from ..api.dependencies.auth import get_current_user
from ..api.dependencies.services import get_pricing_service
from ..api.errors import handle_domain_exception
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.pricing import PriceQuoteRequest, PriceQuoteResponse
from ..services.pricing_service import PricingService

router = APIRouter(tags=["pricing"])


@router.post("/pricing/quote", response_model=PriceQuoteResponse)
async def quote_price(
    payload: PriceQuoteRequest = Body(...),
    current_user: User = Depends(get_current_user),
    pricing_service: PricingService = Depends(get_pricing_service),
) -> PriceQuoteResponse:
    try:
        quote = await asyncio.to_thread(
            pricing_service.quote,
            current_user,
            payload.tutor_id,
            is_recurring=payload.is_recurring,
            recurring_weeks=payload.recurring_weeks,
            use_trial=payload.use_trial,
            duration_minutes=payload.duration,
        )
        return PriceQuoteResponse.from_quote(quote)
    except DomainException as e:
        handle_domain_exception(e)
