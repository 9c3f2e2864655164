"""
Subscription plan catalog.

Plans are static configuration, not per-user data. Each plan is billed per
bed per month; the boost add-on is a flat monthly price on top.
"""

from dataclasses import dataclass
from decimal import Decimal

from config.settings.base import settings

BOOST_PRICE = Decimal("49.99")

# Largest bed count a single subscription can be billed for
MAX_BEDS = 10_000


@dataclass(frozen=True)
class Plan:
    """A named pricing tier."""

    id: str
    name: str
    description: str
    price_per_bed: Decimal
    features: tuple[str, ...]
    recommended: bool = False

    @property
    def stripe_price_id(self) -> str:
        """Stripe price configured for this plan (empty when not set up)."""
        return getattr(settings, f"STRIPE_PRICE_ID_{self.id.upper()}", "")


PLANS: tuple[Plan, ...] = (
    Plan(
        id="basic",
        name="Starter",
        description="For small care homes just starting out",
        price_per_bed=Decimal("9.99"),
        features=(
            "Get online",
            "List your care home",
            "Basic profile (photos, description, pricing)",
            "Inquiries sent to email",
            "Limited to 1 active listing per home",
        ),
    ),
    Plan(
        id="pro",
        name="Pro",
        description="For established care homes looking to grow",
        price_per_bed=Decimal("14.99"),
        features=(
            "Grow faster, more leads",
            "Priority placement in search results",
            "SMS/Email lead notifications",
            "Online booking inquiry form",
            "Up to 5 homes/properties",
            "Analytics dashboard",
        ),
        recommended=True,
    ),
    Plan(
        id="elite",
        name="Elite",
        description="For multiple locations and advanced needs",
        price_per_bed=Decimal("19.99"),
        features=(
            "Everything in Pro",
            "Unlimited homes/properties",
            "Featured placement on the home page",
            "Dedicated account manager",
        ),
    ),
)

PLANS_BY_ID = {plan.id: plan for plan in PLANS}


def get_plan(plan_id: str) -> Plan | None:
    return PLANS_BY_ID.get(plan_id)


def plan_for_price_id(price_id: str) -> Plan | None:
    """Reverse lookup from a Stripe price ID to the plan it bills."""
    if not price_id:
        return None
    for plan in PLANS:
        if plan.stripe_price_id == price_id:
            return plan
    return None
