"""Lesson price rules shared by the API and the booking client."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Union

from ..core.constants import DEFAULT_LESSON_MINUTES, RECURRING_WEEK_OPTIONS

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
WHOLE = Decimal("1")
HUNDRED = Decimal(100)


class PricingError(ValueError):
    """Raised when pricing inputs are out of range."""


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise PricingError(f"Invalid amount: {value!r}") from exc


def quantize_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Number) -> int:
    """Amount in cents, as the payment processor expects it."""
    return int((to_decimal(value) * HUNDRED).quantize(WHOLE, rounding=ROUND_HALF_UP))


def discount_percent_for_weeks(weeks: int) -> int:
    """Step discount for recurring series: 10% from 4 weeks, 5% from 2 weeks."""
    if weeks >= 4:
        return 10
    if weeks >= 2:
        return 5
    return 0


def lesson_price(hourly_rate: Number, duration_minutes: int = DEFAULT_LESSON_MINUTES) -> Decimal:
    """Price of one lesson at ``hourly_rate``, prorated by duration."""
    rate = to_decimal(hourly_rate)
    if rate <= 0:
        raise PricingError("Hourly rate must be positive")
    if duration_minutes <= 0:
        raise PricingError("Duration must be positive")
    return quantize_cents(rate * Decimal(duration_minutes) / Decimal(DEFAULT_LESSON_MINUTES))


@dataclass(frozen=True)
class PriceQuote:
    """Outcome of a price computation; amounts are exact to the cent."""

    regular_price: Decimal
    total: Decimal
    discount_percent: int = 0
    savings: Decimal = Decimal("0.00")
    is_recurring: bool = False
    weeks: int = 1
    is_trial: bool = False

    @property
    def display_total(self) -> int:
        """Total rounded to whole currency units for display."""
        return int(self.total.quantize(WHOLE, rounding=ROUND_HALF_UP))

    @property
    def display_savings(self) -> int:
        return int(self.savings.quantize(WHOLE, rounding=ROUND_HALF_UP))

    @property
    def per_lesson_amounts(self) -> List[Decimal]:
        """Charge recorded on each booking row; the rows sum to ``total``."""
        return split_amount(self.total, self.weeks if self.is_recurring else 1)


def compute_price(
    hourly_rate: Number,
    *,
    is_recurring: bool = False,
    recurring_weeks: int = 1,
    use_trial: bool = False,
    trial_eligible: bool = False,
    trial_price: Number = Decimal("5"),
    duration_minutes: int = DEFAULT_LESSON_MINUTES,
) -> PriceQuote:
    """
    Compute the amount to charge for a booking request.

    Recurring wins over trial: a trial only applies to a single lesson for an
    eligible student who asked for it.
    """
    single = lesson_price(hourly_rate, duration_minutes)

    if is_recurring:
        if recurring_weeks not in RECURRING_WEEK_OPTIONS:
            options = ", ".join(str(w) for w in RECURRING_WEEK_OPTIONS)
            raise PricingError(f"Recurring weeks must be one of: {options}")
        regular = single * recurring_weeks
        percent = discount_percent_for_weeks(recurring_weeks)
        total = quantize_cents(regular - regular * Decimal(percent) / HUNDRED)
        return PriceQuote(
            regular_price=regular,
            total=total,
            discount_percent=percent,
            savings=regular - total,
            is_recurring=True,
            weeks=recurring_weeks,
        )

    if use_trial and trial_eligible:
        trial = quantize_cents(to_decimal(trial_price))
        return PriceQuote(regular_price=single, total=trial, is_trial=True)

    return PriceQuote(regular_price=single, total=single)


def split_amount(total: Decimal, parts: int) -> List[Decimal]:
    """
    Split ``total`` into ``parts`` cent amounts that sum back to ``total``.

    Leftover cents go to the first part, which is the booking attached to the
    payment session.
    """
    if parts < 1:
        raise PricingError("parts must be at least 1")
    cents = to_minor_units(total)
    share, remainder = divmod(cents, parts)
    amounts = [Decimal(share) / HUNDRED for _ in range(parts)]
    amounts[0] = Decimal(share + remainder) / HUNDRED
    return [quantize_cents(amount) for amount in amounts]
