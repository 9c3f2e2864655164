"""
Tests for the pricing calculator and plan catalog.
"""

from decimal import Decimal

import pytest

from apps.billing.plans import BOOST_PRICE, MAX_BEDS, PLANS, get_plan, plan_for_price_id
from apps.billing.pricing import (
    coerce_bed_count,
    coerce_discount,
    coerce_price,
    compute_total,
    quote_plan,
)


class TestComputeTotal:
    """Tests for compute_total."""

    def test_pro_plan_three_beds(self) -> None:
        """3 beds on the $14.99 plan without boost is $44.97."""
        assert compute_total(Decimal("14.99"), 3) == Decimal("44.97")

    def test_boost_is_added_once(self) -> None:
        """Boost is a flat add-on, not multiplied by beds."""
        total = compute_total(Decimal("9.99"), 2, boost_enabled=True, boost_price=BOOST_PRICE)
        assert total == Decimal("69.97")

    def test_boost_price_ignored_when_disabled(self) -> None:
        """A boost price has no effect unless boost is enabled."""
        assert compute_total(Decimal("9.99"), 1, False, Decimal("49.99")) == Decimal("9.99")

    @pytest.mark.parametrize(
        ("discount", "expected"),
        [
            (0, Decimal("44.97")),
            (10, Decimal("40.47")),
            (50, Decimal("22.49")),  # 22.485 rounds half-up
            (100, Decimal("0.00")),
        ],
    )
    def test_discount_applied_to_whole_total(self, discount, expected) -> None:
        """Discount percentage scales the whole total, rounded half-up to cents."""
        assert compute_total(Decimal("14.99"), 3, discount_percentage=discount) == expected

    def test_discount_applies_to_boost(self) -> None:
        """Boost is included in the discounted amount."""
        total = compute_total(
            Decimal("19.99"), 1, True, Decimal("49.99"), discount_percentage=Decimal("20")
        )
        assert total == Decimal("55.98")

    @pytest.mark.parametrize(
        ("price", "beds", "boost", "discount"),
        [
            ("-5", 3, "49.99", 0),
            ("nan", 2, "49.99", 0),
            ("14.99", -5, "-1", 150),
            ("inf", "abc", "inf", -20),
        ],
    )
    def test_malformed_input_never_negative_or_non_finite(self, price, beds, boost, discount) -> None:
        """Malformed input is coerced; the total stays finite and non-negative."""
        total = compute_total(price, beds, True, boost, discount)
        assert total.is_finite()
        assert total >= 0

    def test_over_100_discount_clamped(self) -> None:
        """Discounts above 100% clamp to free, never to a negative total."""
        assert compute_total(Decimal("14.99"), 3, discount_percentage=250) == Decimal("0.00")

    def test_at_bed_cap(self) -> None:
        assert compute_total(Decimal("14.99"), MAX_BEDS) == Decimal("149900.00")

    @pytest.mark.parametrize("beds", [MAX_BEDS + 1, 10**27, "1e30", "1e999999999"])
    def test_huge_bed_counts_priced_at_cap(self, beds) -> None:
        """Bed counts beyond the cap are priced at the cap instead of overflowing."""
        assert compute_total(Decimal("14.99"), beds, True, BOOST_PRICE, 20) == Decimal("119959.99")


class TestCoercion:
    """Tests for boundary coercion helpers."""

    @pytest.mark.parametrize("value", [0, -5, "0", "-5", "", "abc", None, "nan", True])
    def test_invalid_bed_counts_become_one(self, value) -> None:
        """Zero, negatives and non-numeric text yield 1 bed."""
        assert coerce_bed_count(value) == 1

    @pytest.mark.parametrize(("value", "expected"), [(3, 3), ("7", 7), (" 12 ", 12), (2.9, 2)])
    def test_valid_bed_counts_parse(self, value, expected) -> None:
        """Numeric input parses; floats truncate."""
        assert coerce_bed_count(value) == expected

    @pytest.mark.parametrize("value", [MAX_BEDS, MAX_BEDS + 1, 10**27, "1e30", "1e999999999", 1e300])
    def test_bed_count_capped(self, value) -> None:
        assert coerce_bed_count(value) == MAX_BEDS

    def test_negative_price_is_zero(self) -> None:
        assert coerce_price("-1.50") == Decimal("0")

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(-10, Decimal("0")), (150, Decimal("100")), ("12.5", Decimal("12.5")), ("x", Decimal("0"))],
    )
    def test_discount_clamped(self, value, expected) -> None:
        assert coerce_discount(value) == expected


class TestQuotePlan:
    """Tests for quote_plan."""

    def test_breakdown_adds_up(self) -> None:
        """Subtotal plus boost minus discount equals the total."""
        quote = quote_plan(get_plan("elite"), 4, boost_enabled=True, discount_percentage=10)

        assert quote.beds_subtotal == Decimal("79.96")
        assert quote.boost_price == BOOST_PRICE
        assert quote.total == Decimal("116.96")
        assert quote.beds_subtotal + quote.boost_price - quote.discount_amount == quote.total

    def test_malformed_beds_quoted_as_one(self) -> None:
        quote = quote_plan(get_plan("basic"), "not-a-number")

        assert quote.number_of_beds == 1
        assert quote.total == Decimal("9.99")


class TestPlanCatalog:
    """Tests for the static plan catalog."""

    def test_catalog_prices(self) -> None:
        """Starter, Pro and Elite are priced per bed per month."""
        assert [(p.id, p.name, p.price_per_bed) for p in PLANS] == [
            ("basic", "Starter", Decimal("9.99")),
            ("pro", "Pro", Decimal("14.99")),
            ("elite", "Elite", Decimal("19.99")),
        ]

    def test_pro_is_recommended(self) -> None:
        assert [p.id for p in PLANS if p.recommended] == ["pro"]

    def test_unknown_plan(self) -> None:
        assert get_plan("platinum") is None

    def test_plan_for_price_id(self, stripe_prices) -> None:
        """Stripe price IDs map back to plans."""
        assert plan_for_price_id("price_pro_test").id == "pro"
        assert plan_for_price_id("price_unknown") is None
        assert plan_for_price_id("") is None
