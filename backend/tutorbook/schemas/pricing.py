"""Price quote request and response."""

from pydantic import Field

from ..core.constants import DEFAULT_LESSON_MINUTES, MAX_LESSON_MINUTES, MIN_LESSON_MINUTES
from ..domain.pricing import PriceQuote
from ._strict_base import ApiModel, Money, StrictRequestModel


class PriceQuoteRequest(StrictRequestModel):
    tutor_id: str = Field(..., min_length=1)
    is_recurring: bool = False
    recurring_weeks: int = Field(default=1, ge=1)
    use_trial: bool = False
    duration: int = Field(
        default=DEFAULT_LESSON_MINUTES, ge=MIN_LESSON_MINUTES, le=MAX_LESSON_MINUTES
    )


class PriceQuoteResponse(ApiModel):
    regular_price: Money
    price: Money = Field(..., description="Exact amount that will be charged")
    display_price: int = Field(..., description="Amount rounded to whole currency units")
    discount_percent: int
    savings: Money
    is_recurring: bool
    weeks: int
    is_trial: bool

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceQuoteResponse":
        return cls(
            regular_price=quote.regular_price,
            price=quote.total,
            display_price=quote.display_total,
            discount_percent=quote.discount_percent,
            savings=quote.savings,
            is_recurring=quote.is_recurring,
            weeks=quote.weeks,
            is_trial=quote.is_trial,
        )
