"""
Pricing calculator.

Pure functions; no I/O. Malformed input is coerced to safe values here so
that a displayed or charged total is never negative or non-finite.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from apps.billing.plans import BOOST_PRICE, MAX_BEDS, Plan

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def coerce_bed_count(value: Any) -> int:
    """
    Parse a bed count, falling back to 1.

    Accepts ints, floats (truncated) and numeric strings. Zero, negatives,
    blanks and anything non-numeric become 1. Counts above MAX_BEDS are
    capped before conversion, so huge exponents never reach int().
    """
    number = _to_decimal(value)
    if number is None:
        return 1
    if number > MAX_BEDS:
        return MAX_BEDS
    return max(1, int(number))


def coerce_price(value: Any) -> Decimal:
    """Non-negative finite price; anything else is 0."""
    number = _to_decimal(value)
    if number is None or number < ZERO:
        return ZERO
    return number


def coerce_discount(value: Any) -> Decimal:
    """Discount percentage clamped into [0, 100]; invalid input is 0."""
    number = _to_decimal(value)
    if number is None:
        return ZERO
    return min(max(number, ZERO), HUNDRED)


def compute_total(
    price_per_bed: Any,
    number_of_beds: Any,
    boost_enabled: bool = False,
    boost_price: Any = BOOST_PRICE,
    discount_percentage: Any = 0,
) -> Decimal:
    """
    Monthly total for a plan selection.

    (price_per_bed * beds + boost) * (1 - discount / 100), rounded half-up
    to cents.
    """
    subtotal = coerce_price(price_per_bed) * coerce_bed_count(number_of_beds)
    if boost_enabled:
        subtotal += coerce_price(boost_price)
    multiplier = 1 - coerce_discount(discount_percentage) / HUNDRED
    return (subtotal * multiplier).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PlanQuote:
    """Price breakdown for one plan card."""

    plan_id: str
    price_per_bed: Decimal
    number_of_beds: int
    beds_subtotal: Decimal
    boost_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total: Decimal


def quote_plan(
    plan: Plan,
    number_of_beds: Any,
    boost_enabled: bool = False,
    discount_percentage: Any = 0,
    boost_price: Any = BOOST_PRICE,
) -> PlanQuote:
    beds = coerce_bed_count(number_of_beds)
    discount = coerce_discount(discount_percentage)
    boost = coerce_price(boost_price) if boost_enabled else ZERO
    beds_subtotal = (plan.price_per_bed * beds).quantize(CENT, rounding=ROUND_HALF_UP)
    total = compute_total(plan.price_per_bed, beds, boost_enabled, boost_price, discount)
    return PlanQuote(
        plan_id=plan.id,
        price_per_bed=plan.price_per_bed,
        number_of_beds=beds,
        beds_subtotal=beds_subtotal,
        boost_price=boost,
        discount_percentage=discount,
        discount_amount=beds_subtotal + boost - total,
        total=total,
    )
