"""
Billing services - Stripe integration logic.

All Stripe API calls are isolated here for testability.
External calls must NOT be inside database transactions.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from django.db import DatabaseError, transaction
from stripe import StripeError

from apps.accounts.models import User
from apps.billing.models import PromoCode, Subscription, SubscriptionStatus
from apps.billing.plans import BOOST_PRICE, Plan, plan_for_price_id
from apps.billing.promo import redeem_promo_code
from apps.billing.stripe_client import get_stripe
from config.settings.base import settings

logger = logging.getLogger(__name__)

# Stripe statuses that still grant access
ACTIVE_STRIPE_STATUSES = ("active", "trialing")

BOOST_ADDON_NAME = "boost"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """A Stripe subscription reduced to the fields the app tracks."""

    stripe_subscription_id: str
    status: str
    plan_id: str
    number_of_beds: int
    has_boost: bool
    current_period_end: datetime | None
    cancel_at_period_end: bool = False

    @property
    def is_active(self) -> bool:
        return self.status == Subscription.Status.ACTIVE

    @property
    def current_period_end_ms(self) -> int | None:
        if self.current_period_end is None:
            return None
        return int(self.current_period_end.timestamp() * 1000)


def normalize_status(stripe_status: str) -> str:
    """
    Collapse Stripe's subscription statuses into active/canceled/expired.

    Anything that no longer grants access and was not explicitly canceled
    (past_due, unpaid, incomplete, incomplete_expired, paused) is expired.
    """
    if stripe_status in ACTIVE_STRIPE_STATUSES:
        return Subscription.Status.ACTIVE
    if stripe_status == "canceled":
        return Subscription.Status.CANCELED
    return Subscription.Status.EXPIRED


def parse_stripe_subscription(stripe_subscription: Any) -> SubscriptionSnapshot:
    """
    Build a snapshot from a Stripe subscription object.

    The plan line item is recognised by product metadata ``type=plan`` or by
    its price ID; the boost add-on by product metadata ``type=addon,
    name=boost``. Products may be expanded objects or bare IDs.
    """
    plan_id = "basic"
    number_of_beds = 1
    has_boost = False

    items = stripe_subscription.get("items", {}).get("data", [])
    for item in items:
        price = item.get("price") or {}
        product = price.get("product")
        metadata = product.get("metadata", {}) if isinstance(product, dict) else {}
        plan = plan_for_price_id(price.get("id", ""))

        if metadata.get("type") == "plan" or plan is not None:
            plan_id = metadata.get("plan_id") or (plan.id if plan else "basic")
            if item.get("quantity"):
                number_of_beds = item["quantity"]
            elif metadata.get("beds"):
                number_of_beds = int(metadata["beds"])
        elif metadata.get("type") == "addon" and metadata.get("name") == BOOST_ADDON_NAME:
            has_boost = True
        elif price.get("id") and price.get("id") == settings.STRIPE_PRICE_ID_BOOST:
            has_boost = True
        elif price.get("metadata", {}).get("addon") == BOOST_ADDON_NAME:
            has_boost = True

    # basil API moved period dates onto subscription items
    period_end_ts = stripe_subscription.get("current_period_end")
    if not period_end_ts and items:
        period_end_ts = items[0].get("current_period_end")
    period_end = datetime.fromtimestamp(period_end_ts, tz=UTC) if period_end_ts else None

    return SubscriptionSnapshot(
        stripe_subscription_id=stripe_subscription["id"],
        status=normalize_status(stripe_subscription["status"]),
        plan_id=plan_id,
        number_of_beds=max(1, int(number_of_beds)),
        has_boost=has_boost,
        current_period_end=period_end,
        cancel_at_period_end=bool(stripe_subscription.get("cancel_at_period_end", False)),
    )


def snapshot_from_subscription(subscription: Subscription) -> SubscriptionSnapshot:
    """Snapshot of the local mirror (no Stripe call)."""
    return SubscriptionSnapshot(
        stripe_subscription_id=subscription.stripe_subscription_id,
        status=subscription.status,
        plan_id=subscription.plan_id,
        number_of_beds=subscription.number_of_beds,
        has_boost=subscription.has_boost,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


def get_stripe_customer_id(user: User, create: bool = False) -> str | None:
    """
    Find the Stripe customer for a user.

    Uses the stored ID first, then looks the customer up by email (customers
    created before the ID was stored). With ``create=True`` a missing customer
    is created. The found ID is stored on the user.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    stripe = get_stripe()

    customers = stripe.Customer.list(email=user.email, limit=1)
    if customers.data:
        customer_id = customers.data[0].id
    elif create:
        customer = stripe.Customer.create(
            email=user.email,
            name=user.name or None,
            metadata={"user_id": str(user.id)},
        )
        customer_id = customer.id
        logger.info("Created Stripe customer %s for user %s", customer_id, user.id)
    else:
        return None

    user.stripe_customer_id = customer_id
    user.save(update_fields=["stripe_customer_id", "updated_at"])
    return customer_id


def check_subscription(user: User) -> SubscriptionSnapshot | None:
    """
    Fetch the user's current subscription from Stripe.

    Returns the snapshot of the active subscription, or None when the user
    has no Stripe customer or no active subscription. The local mirror and the
    denormalized status row are updated either way.
    """
    observed_at = datetime.now(tz=UTC)
    customer_id = get_stripe_customer_id(user)
    if not customer_id:
        record_subscription_status(user, None, observed_at)
        return None

    stripe = get_stripe()
    subscriptions = stripe.Subscription.list(
        customer=customer_id,
        status="all",
        limit=10,
        expand=["data.items.data.price.product"],
    )

    latest = None
    for stripe_sub in subscriptions.data:
        snapshot = parse_stripe_subscription(stripe_sub)
        if snapshot.is_active:
            save_subscription(user, snapshot, observed_at)
            record_subscription_status(user, snapshot, observed_at)
            return snapshot
        latest = latest or snapshot

    if latest is not None:
        # Keep the mirror in step with a subscription that lapsed at Stripe
        save_subscription(user, latest, observed_at)
    record_subscription_status(user, latest, observed_at)
    return None


def save_subscription(
    user: User,
    snapshot: SubscriptionSnapshot,
    observed_at: datetime | None = None,
) -> Subscription:
    """
    Create or update the local mirror of a Stripe subscription.

    Last-write-wins by ``observed_at``, like the status row: a snapshot
    observed before the mirror's ``synced_at`` is skipped, so a late webhook
    cannot revive a canceled subscription.
    """
    observed_at = observed_at or datetime.now(tz=UTC)
    values = {
        "stripe_subscription_id": snapshot.stripe_subscription_id,
        "plan_id": snapshot.plan_id,
        "status": snapshot.status,
        "number_of_beds": snapshot.number_of_beds,
        "has_boost": snapshot.has_boost,
        "current_period_end": snapshot.current_period_end,
        "cancel_at_period_end": snapshot.cancel_at_period_end,
        "synced_at": observed_at,
    }

    with transaction.atomic():
        subscription = Subscription.objects.select_for_update().filter(user=user).first()
        if subscription is None:
            subscription = Subscription.objects.create(user=user, **values)
            logger.info(
                "Created subscription %s for user %s", snapshot.stripe_subscription_id, user.id
            )
            return subscription
        if subscription.synced_at is not None and subscription.synced_at > observed_at:
            logger.info(
                "Skipped stale update of subscription %s for user %s",
                snapshot.stripe_subscription_id,
                user.id,
            )
            return subscription
        for field, value in values.items():
            setattr(subscription, field, value)
        subscription.save()
    return subscription


def upsert_subscription_status(
    user: User,
    snapshot: SubscriptionSnapshot | None,
    observed_at: datetime,
) -> bool:
    """
    Write the denormalized status row, last-write-wins by ``observed_at``.

    A write carrying an older observation than the stored row is skipped, so
    repeated or out-of-order writes (webhook retries, two tabs returning from
    checkout) converge on the newest Stripe state. Returns True if written.
    """
    if snapshot is not None:
        values = {
            "subscription_id": snapshot.stripe_subscription_id,
            "status": snapshot.status,
            "plan_id": snapshot.plan_id,
            "beds_count": snapshot.number_of_beds,
            "has_boost": snapshot.has_boost,
            "is_active": snapshot.is_active,
            "current_period_end": snapshot.current_period_end,
        }
    else:
        values = {
            "subscription_id": "",
            "status": "none",
            "plan_id": "",
            "beds_count": 1,
            "has_boost": False,
            "is_active": False,
            "current_period_end": None,
        }

    with transaction.atomic():
        row = SubscriptionStatus.objects.select_for_update().filter(user=user).first()
        if row is None:
            SubscriptionStatus.objects.create(user=user, updated_at=observed_at, **values)
            return True
        if row.updated_at > observed_at:
            return False
        for field, value in values.items():
            setattr(row, field, value)
        row.updated_at = observed_at
        row.save()
    return True


def record_subscription_status(
    user: User,
    snapshot: SubscriptionSnapshot | None,
    observed_at: datetime,
) -> None:
    """Best-effort status row upsert; failures are logged, never raised."""
    try:
        upsert_subscription_status(user, snapshot, observed_at)
    except DatabaseError:
        logger.exception("Failed to upsert subscription status for user %s", user.id)


def create_checkout_session(
    user: User,
    plan: Plan,
    number_of_beds: int,
    boost_enabled: bool,
    success_url: str,
    cancel_url: str,
    promo: PromoCode | None = None,
) -> str:
    """
    Create a Stripe Checkout Session for a new subscription.

    Returns the checkout session URL.
    """
    if not plan.stripe_price_id:
        raise ValueError(f"No Stripe price configured for plan {plan.id}")

    stripe = get_stripe()
    customer_id = get_stripe_customer_id(user, create=True)

    line_items: list[dict] = [{"price": plan.stripe_price_id, "quantity": number_of_beds}]
    if boost_enabled:
        if settings.STRIPE_PRICE_ID_BOOST:
            line_items.append({"price": settings.STRIPE_PRICE_ID_BOOST, "quantity": 1})
        else:
            line_items.append(
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {
                            "name": "Boost Add-on",
                            "metadata": {"type": "addon", "name": BOOST_ADDON_NAME},
                        },
                        "unit_amount": int(BOOST_PRICE * 100),
                        "recurring": {"interval": "month"},
                        "metadata": {"addon": BOOST_ADDON_NAME},
                    },
                    "quantity": 1,
                }
            )

    metadata = {
        "user_id": str(user.id),
        "plan_id": plan.id,
        "number_of_beds": str(number_of_beds),
        "boost_enabled": "true" if boost_enabled else "false",
    }

    session_params: dict[str, Any] = {
        "customer": customer_id,
        "mode": "subscription",
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "subscription_data": {"metadata": {"user_id": str(user.id), "plan_id": plan.id}},
    }
    # Stripe rejects discounts together with allow_promotion_codes
    if promo is not None and promo.stripe_coupon_id:
        session_params["discounts"] = [{"coupon": promo.stripe_coupon_id}]
        metadata["promo_code"] = promo.code
    else:
        session_params["allow_promotion_codes"] = True

    session = stripe.checkout.Session.create(**session_params)

    logger.info("Created checkout session %s for user %s", session.id, user.id)
    return session.url


def create_customer_portal_session(user: User, return_url: str) -> str:
    """
    Create a Stripe Customer Portal session.

    Returns the portal URL. Raises ValueError when the user has no Stripe customer.
    """
    customer_id = get_stripe_customer_id(user)
    if not customer_id:
        raise ValueError("User has no Stripe customer")

    stripe = get_stripe()

    session = stripe.billing_portal.Session.create(
        customer=customer_id,
        return_url=return_url,
    )

    return session.url


def cancel_subscription(user: User) -> SubscriptionSnapshot:
    """
    Cancel the user's subscription at the end of the current period.

    Raises Subscription.DoesNotExist when there is no active subscription.
    """
    subscription = Subscription.objects.get(user=user, status=Subscription.Status.ACTIVE)

    stripe = get_stripe()
    try:
        stripe_sub = stripe.Subscription.modify(
            subscription.stripe_subscription_id,
            cancel_at_period_end=True,
            expand=["items.data.price.product"],
        )
    except StripeError as e:
        logger.error("Failed to cancel subscription %s: %s", subscription.stripe_subscription_id, e)
        raise

    snapshot = parse_stripe_subscription(stripe_sub)
    observed_at = datetime.now(tz=UTC)
    save_subscription(user, snapshot, observed_at)
    record_subscription_status(user, snapshot, observed_at)

    logger.info("Subscription %s set to cancel at period end", subscription.stripe_subscription_id)
    return snapshot


def list_invoices(user: User, limit: int = 12, starting_after: str | None = None) -> Any:
    """
    List the user's Stripe invoices, newest first.

    Returns None when the user has no Stripe customer.
    """
    customer_id = get_stripe_customer_id(user)
    if not customer_id:
        return None

    stripe = get_stripe()
    params: dict[str, Any] = {
        "customer": customer_id,
        "limit": min(limit, 100),  # Stripe max is 100
    }
    if starting_after:
        params["starting_after"] = starting_after
    return stripe.Invoice.list(**params)


def _resolve_user(stripe_object: Any) -> User | None:
    """Find the local user for a Stripe subscription or checkout session."""
    user_id = (stripe_object.get("metadata") or {}).get("user_id")
    if user_id:
        user = User.objects.filter(id=int(user_id)).first()
        if user is not None:
            return user

    customer_id = stripe_object.get("customer")
    if customer_id:
        return User.objects.filter(stripe_customer_id=customer_id).first()
    return None


def _event_time(observed_at: int | None) -> datetime:
    if observed_at:
        return datetime.fromtimestamp(observed_at, tz=UTC)
    return datetime.now(tz=UTC)


def handle_subscription_created(stripe_subscription: Any, observed_at: int | None = None) -> None:
    """
    Handle customer.subscription.created and completed checkouts.

    Creates or updates the local Subscription and the status row.
    """
    user = _resolve_user(stripe_subscription)
    if user is None:
        logger.warning("No user found for subscription %s", stripe_subscription.get("id"))
        return

    snapshot = parse_stripe_subscription(stripe_subscription)
    event_time = _event_time(observed_at)
    save_subscription(user, snapshot, event_time)
    record_subscription_status(user, snapshot, event_time)
    logger.info("Created/updated subscription for user %s", user.id)


def handle_subscription_updated(stripe_subscription: Any, observed_at: int | None = None) -> None:
    """
    Handle customer.subscription.updated webhook.

    Updates local Subscription record.
    """
    try:
        subscription = Subscription.objects.select_related("user").get(
            stripe_subscription_id=stripe_subscription["id"]
        )
    except Subscription.DoesNotExist:
        # Might be a new subscription - try to create
        handle_subscription_created(stripe_subscription, observed_at)
        return

    snapshot = parse_stripe_subscription(stripe_subscription)
    old_status = subscription.status
    event_time = _event_time(observed_at)
    subscription = save_subscription(subscription.user, snapshot, event_time)
    record_subscription_status(subscription.user, snapshot, event_time)

    if old_status != subscription.status:
        logger.info(
            "Subscription %s status %s -> %s",
            subscription.stripe_subscription_id,
            old_status,
            snapshot.status,
        )


def handle_subscription_deleted(stripe_subscription: Any, observed_at: int | None = None) -> None:
    """
    Handle customer.subscription.deleted webhook.

    Marks subscription as canceled.
    """
    try:
        subscription = Subscription.objects.select_related("user").get(
            stripe_subscription_id=stripe_subscription["id"]
        )
    except Subscription.DoesNotExist:
        return

    event_time = _event_time(observed_at)
    if subscription.synced_at is not None and subscription.synced_at > event_time:
        logger.info("Skipped stale deletion of subscription %s", subscription.stripe_subscription_id)
        return

    subscription.status = Subscription.Status.CANCELED
    subscription.cancel_at_period_end = False
    subscription.synced_at = event_time
    subscription.save(update_fields=["status", "cancel_at_period_end", "synced_at", "updated_at"])
    record_subscription_status(
        subscription.user, snapshot_from_subscription(subscription), event_time
    )

    logger.info("Marked subscription %s as canceled", subscription.stripe_subscription_id)


def handle_checkout_completed(checkout_session: Any, observed_at: int | None = None) -> None:
    """
    Handle checkout.session.completed webhook.

    Fetches the created subscription and counts a promo redemption.
    """
    subscription_id = checkout_session.get("subscription")
    if not subscription_id:
        return

    stripe = get_stripe()
    stripe_sub = stripe.Subscription.retrieve(
        subscription_id, expand=["items.data.price.product"]
    )
    handle_subscription_created(stripe_sub, observed_at)

    promo_code = (checkout_session.get("metadata") or {}).get("promo_code")
    if promo_code:
        redeem_promo_code(promo_code)
