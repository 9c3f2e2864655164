"""
Promo code validation for the subscription page.

One remote check per Apply. Nothing is cached and nothing is retried; a
failed attempt is repeated only when the user applies the code again.
"""

from dataclasses import dataclass
from decimal import Decimal

from apps.billing.client.gateway import BillingClientError, BillingGateway, BillingTransportError
from apps.billing.client.notify import Notification, Notifier, Severity
from apps.billing.pricing import coerce_discount
from apps.core.logging import get_logger

logger = get_logger(__name__)

VALIDATION_FAILED = "validation failed"


@dataclass(frozen=True)
class PromoDiscount:
    """Result of applying a promo code. Never persisted."""

    code: str
    discount_percentage: Decimal
    is_valid: bool
    message: str

    @classmethod
    def none(cls) -> "PromoDiscount":
        return cls(code="", discount_percentage=Decimal("0"), is_valid=False, message="")


class PromoCodeValidator:
    """Applies promo codes through the billing API and reports the outcome."""

    def __init__(self, gateway: BillingGateway, notifier: Notifier) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.is_checking = False

    async def validate_promo_code(self, code: str) -> PromoDiscount:
        """
        Validate ``code`` and notify the user of the outcome.

        Invalid codes and failed checks always carry a zero discount.
        """
        normalized = (code or "").strip().upper()
        if not normalized:
            return PromoDiscount(normalized, Decimal("0"), False, "Enter a promo code")

        self.is_checking = True
        try:
            result = await self.gateway.check_promo_code(normalized)
        except BillingClientError as e:
            timed_out = isinstance(e, BillingTransportError) and e.timed_out
            logger.warning("promo_code_validation_failed", error=str(e), timed_out=timed_out)
            self.notifier.notify(
                Notification(
                    title="Error",
                    description=(
                        "Request timed out. Please try again."
                        if timed_out
                        else "Failed to validate promo code. Please try again."
                    ),
                    severity=Severity.ERROR,
                )
            )
            return PromoDiscount(normalized, Decimal("0"), False, VALIDATION_FAILED)
        finally:
            self.is_checking = False

        if not result.is_valid:
            self.notifier.notify(
                Notification(title="Invalid promo code", description=result.message, severity=Severity.ERROR)
            )
            return PromoDiscount(normalized, Decimal("0"), False, result.message)

        self.notifier.notify(
            Notification(title="Success!", description=result.message, severity=Severity.SUCCESS)
        )
        return PromoDiscount(
            normalized, coerce_discount(result.discount_percentage), True, result.message
        )
