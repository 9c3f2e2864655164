"""
Billing API endpoints.

Handles the plan catalog, price quotes, promo code checks, subscription status,
Stripe checkout, the customer portal and invoices.
"""

from datetime import UTC, datetime

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.billing.models import Subscription, SubscriptionStatus
from apps.billing.plans import BOOST_PRICE, PLANS, get_plan
from apps.billing.pricing import quote_plan
from apps.billing.promo import check_promo_code, get_valid_promo_code
from apps.billing.schemas import (
    CheckoutRequest,
    InvoiceListResponse,
    InvoiceResponse,
    PlanListResponse,
    PlanResponse,
    PortalRequest,
    PromoCheckRequest,
    PromoCheckResponse,
    QuoteResponse,
    RedirectResponse,
    SubscriptionCheckResponse,
    SubscriptionPayload,
    SubscriptionStatusResponse,
)
from apps.billing.services import (
    SubscriptionSnapshot,
    cancel_subscription,
    check_subscription,
    create_checkout_session,
    create_customer_portal_session,
)
from apps.billing.services import list_invoices as list_stripe_invoices
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import BearerAuth, get_auth_context, require_owner
from apps.core.throttling import RateLimitExceeded, check_rate_limit
from apps.core.utils import get_client_ip
from config.settings.base import settings

logger = get_logger(__name__)

router = Router(tags=["billing"])
bearer_auth = BearerAuth()

SUBSCRIPTION_PAGE_PATH = "/owner/subscription"

# 10 checks per 5 minutes per client
PROMO_CHECK_LIMIT = 10
PROMO_CHECK_WINDOW_SECONDS = 300


def _subscription_payload(snapshot: SubscriptionSnapshot) -> SubscriptionPayload:
    return SubscriptionPayload(
        id=snapshot.stripe_subscription_id,
        status=snapshot.status,
        plan_id=snapshot.plan_id,
        number_of_beds=snapshot.number_of_beds,
        has_boost=snapshot.has_boost,
        current_period_end_ms=snapshot.current_period_end_ms,
        cancel_at_period_end=snapshot.cancel_at_period_end,
    )


@router.get(
    "/plans",
    response={200: PlanListResponse},
    operation_id="listPlans",
    summary="List subscription plans",
)
def list_plans(request: HttpRequest) -> PlanListResponse:
    """Public plan catalog, per bed per month, plus the boost add-on price."""
    return PlanListResponse(
        plans=[
            PlanResponse(
                id=plan.id,
                name=plan.name,
                description=plan.description,
                price_per_bed=float(plan.price_per_bed),
                features=list(plan.features),
                recommended=plan.recommended,
            )
            for plan in PLANS
        ],
        boost_price=float(BOOST_PRICE),
    )


@router.get(
    "/quote",
    response={200: QuoteResponse, 400: ErrorResponse},
    operation_id="getQuote",
    summary="Quote a monthly price",
)
def get_quote(
    request: HttpRequest,
    plan_id: str,
    number_of_beds: str = "1",
    boost_enabled: bool = False,
    promo_code: str | None = None,
) -> QuoteResponse:
    """
    Price a plan selection.

    Malformed bed counts fall back to 1 and counts above MAX_BEDS are
    capped. An invalid promo code is reported in
    ``promo_message`` and priced without a discount.
    """
    plan = get_plan(plan_id)
    if plan is None:
        raise HttpError(400, "Invalid plan ID")

    discount = 0
    promo_message = None
    if promo_code:
        result = check_promo_code(promo_code)
        promo_message = result.message
        if result.is_valid:
            discount = result.discount_percentage

    quote = quote_plan(plan, number_of_beds, boost_enabled, discount)
    return QuoteResponse(
        plan_id=quote.plan_id,
        price_per_bed=float(quote.price_per_bed),
        number_of_beds=quote.number_of_beds,
        beds_subtotal=float(quote.beds_subtotal),
        boost_price=float(quote.boost_price),
        discount_percentage=float(quote.discount_percentage),
        discount_amount=float(quote.discount_amount),
        total=float(quote.total),
        promo_message=promo_message,
    )


@router.post(
    "/promo-codes/check",
    response={200: list[PromoCheckResponse], 429: ErrorResponse},
    operation_id="checkPromoCode",
    summary="Validate a promo code",
)
def check_promo(request: HttpRequest, payload: PromoCheckRequest) -> list[PromoCheckResponse]:
    """
    Validate a promo code.

    Returns a single-element list. Rate limited per client IP.
    """
    client_ip = get_client_ip(request)
    try:
        check_rate_limit(
            f"promo_check:{client_ip}",
            max_requests=PROMO_CHECK_LIMIT,
            window_seconds=PROMO_CHECK_WINDOW_SECONDS,
        )
    except RateLimitExceeded as e:
        raise HttpError(429, str(e)) from e

    result = check_promo_code(payload.code)
    logger.info("promo_code_checked", is_valid=result.is_valid)
    return [
        PromoCheckResponse(
            is_valid=result.is_valid,
            discount_percentage=float(result.discount_percentage),
            message=result.message,
        )
    ]


@router.get(
    "/subscription",
    response={200: SubscriptionCheckResponse, 401: ErrorResponse, 500: ErrorResponse},
    auth=bearer_auth,
    operation_id="checkSubscription",
    summary="Check subscription status with Stripe",
)
def get_subscription(request: HttpRequest) -> SubscriptionCheckResponse:
    """
    Check the current user's subscription against Stripe.

    Users without a Stripe customer or without an active subscription get
    ``subscribed: false``. Every successful check refreshes the cached status row.
    """
    user = get_auth_context(request).require_auth()

    try:
        snapshot = check_subscription(user)
    except Exception:
        logger.exception("subscription_check_failed")
        raise HttpError(500, "Failed to check subscription status")

    if snapshot is None:
        return SubscriptionCheckResponse(subscribed=False, subscription=None)
    return SubscriptionCheckResponse(subscribed=True, subscription=_subscription_payload(snapshot))


@router.get(
    "/subscription/status",
    response={200: SubscriptionStatusResponse, 401: ErrorResponse, 404: ErrorResponse},
    auth=bearer_auth,
    operation_id="getSubscriptionStatus",
    summary="Get cached subscription status",
)
def get_subscription_status(request: HttpRequest) -> SubscriptionStatusResponse:
    """Last recorded subscription state, without calling Stripe."""
    user = get_auth_context(request).require_auth()

    try:
        row = SubscriptionStatus.objects.get(user=user)
    except SubscriptionStatus.DoesNotExist:
        raise HttpError(404, "No subscription status recorded")

    return SubscriptionStatusResponse(
        subscription_id=row.subscription_id,
        status=row.status,
        plan_id=row.plan_id,
        beds_count=row.beds_count,
        has_boost=row.has_boost,
        is_active=row.is_active,
        current_period_end=row.current_period_end.isoformat() if row.current_period_end else None,
        updated_at=row.updated_at.isoformat(),
    )


@router.post(
    "/checkout",
    response={
        200: RedirectResponse,
        400: ErrorResponse,
        401: ErrorResponse,
        403: ErrorResponse,
        500: ErrorResponse,
    },
    auth=bearer_auth,
    operation_id="createCheckoutSession",
    summary="Create Stripe Checkout session",
)
@require_owner
def create_checkout(request: HttpRequest, payload: CheckoutRequest) -> RedirectResponse:
    """
    Create a Stripe Checkout session for subscribing.

    Owner only. Returns URL to redirect the browser to Stripe Checkout.
    """
    user = get_auth_context(request).require_owner()

    plan = get_plan(payload.plan_id)
    if plan is None:
        raise HttpError(400, "Invalid plan ID")

    if Subscription.objects.filter(user=user, status=Subscription.Status.ACTIVE).exists():
        raise HttpError(400, "Already subscribed. Use the customer portal to manage.")

    promo = None
    if payload.promo_code:
        promo = get_valid_promo_code(payload.promo_code)
        if promo is None:
            raise HttpError(400, check_promo_code(payload.promo_code).message)

    page_url = f"{settings.FRONTEND_URL}{SUBSCRIPTION_PAGE_PATH}"
    try:
        checkout_url = create_checkout_session(
            user=user,
            plan=plan,
            number_of_beds=payload.number_of_beds,
            boost_enabled=payload.boost_enabled,
            success_url=payload.success_url or f"{page_url}?success=true",
            cancel_url=payload.cancel_url or f"{page_url}?canceled=true",
            promo=promo,
        )
    except Exception:
        logger.exception("checkout_session_creation_failed", plan_id=plan.id)
        raise HttpError(500, "Failed to create checkout session")

    logger.info(
        "checkout_session_created",
        plan_id=plan.id,
        number_of_beds=payload.number_of_beds,
        boost_enabled=payload.boost_enabled,
    )
    return RedirectResponse(url=checkout_url)


@router.post(
    "/portal",
    response={
        200: RedirectResponse,
        400: ErrorResponse,
        401: ErrorResponse,
        403: ErrorResponse,
        500: ErrorResponse,
    },
    auth=bearer_auth,
    operation_id="createPortalSession",
    summary="Create Stripe Customer Portal session",
)
@require_owner
def create_portal(request: HttpRequest, payload: PortalRequest) -> RedirectResponse:
    """
    Create a Stripe Customer Portal session.

    Owner only. Returns URL to redirect the browser to manage the subscription.
    """
    user = get_auth_context(request).require_owner()
    return_url = payload.return_url or f"{settings.FRONTEND_URL}{SUBSCRIPTION_PAGE_PATH}"

    try:
        portal_url = create_customer_portal_session(user=user, return_url=return_url)
    except ValueError:
        raise HttpError(400, "No billing account set up")
    except Exception:
        logger.exception("portal_session_creation_failed")
        raise HttpError(500, "Failed to create portal session")

    return RedirectResponse(url=portal_url)


@router.post(
    "/subscription/cancel",
    response={
        200: SubscriptionCheckResponse,
        400: ErrorResponse,
        401: ErrorResponse,
        403: ErrorResponse,
        500: ErrorResponse,
    },
    auth=bearer_auth,
    operation_id="cancelSubscription",
    summary="Cancel subscription at period end",
)
@require_owner
def cancel(request: HttpRequest) -> SubscriptionCheckResponse:
    """
    Cancel the active subscription at the end of the billing period.

    Owner only. Access continues until ``current_period_end_ms``.
    """
    user = get_auth_context(request).require_owner()

    try:
        snapshot = cancel_subscription(user)
    except Subscription.DoesNotExist:
        raise HttpError(400, "No active subscription")
    except Exception:
        logger.exception("subscription_cancel_failed")
        raise HttpError(500, "Failed to cancel subscription")

    logger.info("subscription_cancel_scheduled", subscription_id=snapshot.stripe_subscription_id)
    return SubscriptionCheckResponse(
        subscribed=snapshot.is_active, subscription=_subscription_payload(snapshot)
    )


@router.get(
    "/invoices",
    response={200: InvoiceListResponse, 401: ErrorResponse, 403: ErrorResponse, 500: ErrorResponse},
    auth=bearer_auth,
    operation_id="listInvoices",
    summary="List owner invoices",
)
@require_owner
def list_invoices(
    request: HttpRequest,
    limit: int = 12,
    starting_after: str | None = None,
) -> InvoiceListResponse:
    """
    List invoices from Stripe for the current owner.

    Owner only. Returns invoices sorted by date (newest first).
    Use starting_after with an invoice ID for pagination.
    """
    user = get_auth_context(request).require_owner()

    try:
        invoice_list = list_stripe_invoices(user, limit=limit, starting_after=starting_after)
    except Exception:
        logger.exception("invoice_list_failed")
        raise HttpError(500, "Failed to retrieve invoices")

    if invoice_list is None:
        return InvoiceListResponse(invoices=[], has_more=False)

    def _iso(timestamp: int | None) -> str | None:
        return datetime.fromtimestamp(timestamp, tz=UTC).isoformat() if timestamp else None

    invoices = [
        InvoiceResponse(
            id=inv.id,
            number=inv.number,
            status=inv.status or "unknown",
            amount_due=inv.amount_due,
            amount_paid=inv.amount_paid,
            currency=inv.currency,
            created=_iso(inv.created),
            hosted_invoice_url=inv.hosted_invoice_url,
            invoice_pdf=inv.invoice_pdf,
            period_start=_iso(inv.period_start),
            period_end=_iso(inv.period_end),
        )
        for inv in invoice_list.data
    ]
    return InvoiceListResponse(invoices=invoices, has_more=invoice_list.has_more)
