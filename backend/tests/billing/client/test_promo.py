"""
Tests for promo code validation on the subscription page.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from apps.billing.client.gateway import (
    BillingGateway,
    BillingTransportError,
    InvalidResponse,
    PromoCheck,
)
from apps.billing.client.notify import Severity
from apps.billing.client.promo import VALIDATION_FAILED, PromoCodeValidator, PromoDiscount
from tests.billing.client.fakes import RecordingNotifier


def make_validator(**gateway_kwargs) -> tuple[PromoCodeValidator, AsyncMock, RecordingNotifier]:
    gateway = AsyncMock(spec=BillingGateway)
    gateway.check_promo_code.configure_mock(**gateway_kwargs)
    notifier = RecordingNotifier()
    return PromoCodeValidator(gateway, notifier), gateway, notifier


@pytest.mark.asyncio
class TestValidatePromoCode:
    """Tests for PromoCodeValidator.validate_promo_code."""

    async def test_valid_code(self) -> None:
        validator, gateway, notifier = make_validator(
            return_value=PromoCheck(
                is_valid=True,
                discount_percentage=Decimal("20"),
                message="Promo code applied: 20% discount",
            )
        )

        result = await validator.validate_promo_code("  welcome20 ")

        assert result == PromoDiscount(
            "WELCOME20", Decimal("20"), True, "Promo code applied: 20% discount"
        )
        gateway.check_promo_code.assert_awaited_once_with("WELCOME20")
        assert notifier.notifications[0].title == "Success!"
        assert notifier.notifications[0].severity == Severity.SUCCESS

    async def test_invalid_code_has_zero_discount(self) -> None:
        validator, _, notifier = make_validator(
            return_value=PromoCheck(
                is_valid=False, discount_percentage=Decimal("15"), message="Promo code has expired"
            )
        )

        result = await validator.validate_promo_code("OLD")

        assert result.is_valid is False
        assert result.discount_percentage == Decimal("0")
        assert result.message == "Promo code has expired"
        assert notifier.errors[0].title == "Invalid promo code"
        assert notifier.errors[0].description == "Promo code has expired"

    async def test_discount_clamped(self) -> None:
        validator, _, _ = make_validator(
            return_value=PromoCheck(is_valid=True, discount_percentage=Decimal("150"), message="ok")
        )

        result = await validator.validate_promo_code("BIG")

        assert result.discount_percentage == Decimal("100")

    async def test_transport_failure(self) -> None:
        """A failed check is reported and never applies a discount."""
        validator, _, notifier = make_validator(
            side_effect=BillingTransportError("HTTP 500", status_code=500)
        )

        result = await validator.validate_promo_code("WELCOME20")

        assert result.discount_percentage == Decimal("0")
        assert result.is_valid is False
        assert result.message == VALIDATION_FAILED
        assert len(notifier.errors) == 1
        assert notifier.errors[0].description == "Failed to validate promo code. Please try again."
        assert validator.is_checking is False

    async def test_timeout_message(self) -> None:
        validator, _, notifier = make_validator(
            side_effect=BillingTransportError("timed out", timed_out=True)
        )

        result = await validator.validate_promo_code("WELCOME20")

        assert result.message == VALIDATION_FAILED
        assert notifier.errors[0].description == "Request timed out. Please try again."

    async def test_malformed_response(self) -> None:
        validator, _, notifier = make_validator(side_effect=InvalidResponse("empty list"))

        result = await validator.validate_promo_code("WELCOME20")

        assert result.message == VALIDATION_FAILED
        assert len(notifier.errors) == 1

    async def test_empty_code_skips_remote_call(self) -> None:
        validator, gateway, notifier = make_validator()

        result = await validator.validate_promo_code("   ")

        assert result.is_valid is False
        assert result.message == "Enter a promo code"
        gateway.check_promo_code.assert_not_awaited()
        assert notifier.notifications == []

    async def test_each_apply_checks_again(self) -> None:
        """Results are not cached between applies."""
        validator, gateway, _ = make_validator(
            return_value=PromoCheck(is_valid=True, discount_percentage=Decimal("10"), message="ok")
        )

        await validator.validate_promo_code("TEN")
        await validator.validate_promo_code("TEN")

        assert gateway.check_promo_code.await_count == 2
