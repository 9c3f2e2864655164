"""
Promo code validation and redemption.

``check_promo_code`` is the validation procedure the subscription page calls
before checkout; it never mutates anything. Redemptions are counted only when
Stripe reports a completed checkout.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from django.db.models import F

from apps.billing.models import PromoCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromoCheckResult:
    """Outcome of a promo code check."""

    is_valid: bool
    discount_percentage: Decimal
    message: str


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _rejection_reason(promo: PromoCode, now: datetime) -> str | None:
    if not promo.is_active:
        return "This promo code is no longer active"
    if promo.valid_from and promo.valid_from > now:
        return "This promo code is not active yet"
    if promo.expires_at and promo.expires_at <= now:
        return "This promo code has expired"
    if promo.max_redemptions is not None and promo.times_redeemed >= promo.max_redemptions:
        return "This promo code has reached its usage limit"
    return None


def check_promo_code(code: str, now: datetime | None = None) -> PromoCheckResult:
    """
    Validate a promo code.

    Invalid codes carry a zero discount and a user-facing reason.
    """
    now = now or datetime.now(tz=UTC)
    normalized = normalize_code(code)

    promo = PromoCode.objects.filter(code=normalized).first() if normalized else None
    if promo is None:
        return PromoCheckResult(False, Decimal("0"), "Invalid promo code")

    reason = _rejection_reason(promo, now)
    if reason is not None:
        return PromoCheckResult(False, Decimal("0"), reason)

    discount = promo.discount_percentage.normalize()
    return PromoCheckResult(True, promo.discount_percentage, f"Promo code applied: {discount:f}% discount")


def get_valid_promo_code(code: str, now: datetime | None = None) -> PromoCode | None:
    """The PromoCode for ``code`` if it currently passes validation."""
    normalized = normalize_code(code)
    if not normalized:
        return None
    promo = PromoCode.objects.filter(code=normalized).first()
    if promo is None or _rejection_reason(promo, now or datetime.now(tz=UTC)) is not None:
        return None
    return promo


def redeem_promo_code(code: str) -> None:
    """Count one redemption of ``code`` (completed checkout)."""
    updated = PromoCode.objects.filter(code=normalize_code(code)).update(
        times_redeemed=F("times_redeemed") + 1
    )
    if not updated:
        logger.warning("Redeemed unknown promo code %s", code)
