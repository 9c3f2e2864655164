"""
Billing API schemas - request/response types for billing endpoints.
"""

from ninja import Field, Schema

from apps.billing.plans import MAX_BEDS


class PlanResponse(Schema):
    """One plan in the catalog."""

    id: str
    name: str
    description: str
    price_per_bed: float
    features: list[str]
    recommended: bool


class PlanListResponse(Schema):
    """Plan catalog plus the boost add-on price."""

    plans: list[PlanResponse]
    boost_price: float


class QuoteResponse(Schema):
    """Monthly price breakdown for a plan selection."""

    plan_id: str
    price_per_bed: float
    number_of_beds: int
    beds_subtotal: float
    boost_price: float  # 0 when boost is off
    discount_percentage: float
    discount_amount: float
    total: float
    promo_message: str | None = None


class SubscriptionPayload(Schema):
    """Subscription details as reported by Stripe."""

    id: str
    status: str  # 'active', 'canceled', 'expired'
    plan_id: str
    number_of_beds: int
    has_boost: bool
    current_period_end_ms: int | None  # Unix epoch milliseconds
    cancel_at_period_end: bool = False


class SubscriptionCheckResponse(Schema):
    """Result of a live subscription check."""

    subscribed: bool
    subscription: SubscriptionPayload | None = None


class SubscriptionStatusResponse(Schema):
    """Cached status row (last known Stripe state)."""

    subscription_id: str
    status: str  # 'active', 'canceled', 'expired', 'none'
    plan_id: str
    beds_count: int
    has_boost: bool
    is_active: bool
    current_period_end: str | None  # ISO timestamp
    updated_at: str  # ISO timestamp


class CheckoutRequest(Schema):
    """Request to create a Stripe Checkout session."""

    plan_id: str
    number_of_beds: int = Field(1, ge=1, le=MAX_BEDS)
    boost_enabled: bool = False
    success_url: str | None = None  # Defaults to the subscription page
    cancel_url: str | None = None
    promo_code: str | None = None


class PortalRequest(Schema):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class RedirectResponse(Schema):
    """URL of a Stripe-hosted page to redirect the browser to."""

    url: str


class PromoCheckRequest(Schema):
    """Promo code to validate."""

    code: str = Field(..., max_length=64)


class PromoCheckResponse(Schema):
    """Outcome of a promo code check."""

    is_valid: bool
    discount_percentage: float
    message: str


class InvoiceResponse(Schema):
    """Invoice data from Stripe."""

    id: str
    number: str | None
    status: str  # 'draft', 'open', 'paid', 'uncollectible', 'void'
    amount_due: int  # Amount in cents
    amount_paid: int  # Amount in cents
    currency: str  # e.g., 'usd'
    created: str  # ISO timestamp
    hosted_invoice_url: str | None  # URL to view invoice online
    invoice_pdf: str | None  # URL to download PDF
    period_start: str | None  # ISO timestamp
    period_end: str | None  # ISO timestamp


class InvoiceListResponse(Schema):
    """List of invoices with pagination info."""

    invoices: list[InvoiceResponse]
    has_more: bool
