"""
Owner subscription page model.

Combines the reconciler, promo validator and redirect initiator with the plan
catalog into what the page renders: plan cards with live totals, the current
subscription panel (or the "No Active Subscription" call to action), return
dialogs from Stripe Checkout and the upgrade prompt.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from apps.billing.client.gateway import BillingGateway
from apps.billing.client.handoff import Intent, RedirectInitiator
from apps.billing.client.notify import Navigator, Notifier
from apps.billing.client.promo import PromoCodeValidator, PromoDiscount
from apps.billing.client.reconciler import (
    BillingSelection,
    ReconcilerState,
    SubscriptionReconciler,
)
from apps.billing.client.session import SessionContext
from apps.billing.plans import BOOST_PRICE, PLANS, get_plan
from apps.billing.pricing import compute_total


def format_price(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def format_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


@dataclass(frozen=True)
class PlanCard:
    plan_id: str
    name: str
    description: str
    price_per_bed: Decimal
    features: tuple[str, ...]
    recommended: bool
    total: Decimal
    is_current: bool
    action_label: str
    action_enabled: bool

    @property
    def total_display(self) -> str:
        return format_price(self.total)


@dataclass(frozen=True)
class SubscriptionPanel:
    """Current subscription summary with the Manage Subscription action."""

    plan_name: str
    status_label: str
    number_of_beds: int
    has_boost: bool
    next_billing_date: str | None
    cancel_at_period_end: bool
    action_label: str = "Manage Subscription"


@dataclass(frozen=True)
class NoSubscriptionPanel:
    title: str = "No Active Subscription"
    description: str = "You don't have an active subscription. Subscribe to list your properties."
    action_label: str = "View Plans"


class SubscriptionPage:
    """State and actions of the owner subscription page for one mount."""

    def __init__(
        self,
        gateway: BillingGateway,
        session: SessionContext | None,
        notifier: Notifier,
        navigator: Navigator,
        query: Mapping[str, str] | None = None,
        boost_price: Decimal = BOOST_PRICE,
    ) -> None:
        query = query or {}
        self.reconciler = SubscriptionReconciler(gateway, session, notifier)
        self.promo_validator = PromoCodeValidator(gateway, notifier)
        self.redirects = RedirectInitiator(gateway, session, notifier, navigator)
        self.boost_price = boost_price
        self.promo = PromoDiscount.none()
        self.show_success_dialog = query.get("success") == "true"
        self.show_canceled_dialog = query.get("canceled") == "true"
        self.intent = query.get("intent")

    @property
    def selection(self) -> BillingSelection:
        return self.reconciler.selection

    @property
    def state(self) -> ReconcilerState:
        return self.reconciler.state

    @property
    def is_subscribed(self) -> bool:
        """
        True while an active subscription is on screen.

        Follows the preserved subscription view, so a failed or pending
        refresh does not flip the page back to the plan picker.
        """
        subscription = self.reconciler.subscription
        return subscription is not None and subscription.status == "active"

    @property
    def is_loading(self) -> bool:
        return self.reconciler.is_loading

    @property
    def is_processing(self) -> bool:
        return self.redirects.is_processing

    @property
    def show_upgrade_prompt(self) -> bool:
        subscription = self.reconciler.subscription
        return self.is_subscribed and subscription.plan_id == "basic"

    async def mount(self) -> ReconcilerState:
        """
        Load the subscription status.

        A ``manage`` intent carried over from the login page opens the portal
        once the subscription is confirmed active.
        """
        state = await self.reconciler.refresh()
        if self.intent == Intent.MANAGE and state == ReconcilerState.ACTIVE:
            self.intent = None
            await self.redirects.initiate_manage()
        return self.reconciler.state

    def unmount(self) -> None:
        self.reconciler.close()

    async def retry(self) -> ReconcilerState:
        return await self.reconciler.retry()

    def set_number_of_beds(self, value: object) -> None:
        self.selection.set_number_of_beds(value)

    def set_boost(self, enabled: bool) -> None:
        self.selection.set_boost(enabled)

    async def apply_promo_code(self, code: str) -> PromoDiscount:
        self.promo = await self.promo_validator.validate_promo_code(code)
        return self.promo

    async def subscribe(self, plan_id: str | None = None) -> bool:
        if plan_id is not None:
            self.selection.select_plan(plan_id)
        return await self.redirects.initiate_checkout(self.selection, self.promo)

    async def manage(self) -> bool:
        return await self.redirects.initiate_manage()

    def dismiss_dialogs(self) -> None:
        self.show_success_dialog = False
        self.show_canceled_dialog = False

    def total_for(self, plan_id: str) -> Decimal:
        plan = get_plan(plan_id)
        if plan is None:
            return Decimal("0.00")
        return compute_total(
            plan.price_per_bed,
            self.selection.number_of_beds,
            self.selection.boost_enabled,
            self.boost_price,
            self.promo.discount_percentage if self.promo.is_valid else 0,
        )

    def plan_cards(self) -> list[PlanCard]:
        subscription = self.reconciler.subscription
        cards = []
        for plan in PLANS:
            is_current = self.is_subscribed and subscription.plan_id == plan.id
            if is_current:
                label = "Current Plan"
            elif plan.recommended:
                label = "Upgrade Now"
            else:
                label = "Subscribe"
            cards.append(
                PlanCard(
                    plan_id=plan.id,
                    name=plan.name,
                    description=plan.description,
                    price_per_bed=plan.price_per_bed,
                    features=plan.features,
                    recommended=plan.recommended,
                    total=self.total_for(plan.id),
                    is_current=is_current,
                    action_label=label,
                    action_enabled=not (self.is_subscribed or self.is_processing or self.is_loading),
                )
            )
        return cards

    def subscription_panel(self) -> SubscriptionPanel | NoSubscriptionPanel | None:
        """
        Panel for the current state.

        None until a subscription view exists. A view from an earlier
        check stays on screen while a retry is pending or after it fails.
        """
        subscription = self.reconciler.subscription
        if self.state == ReconcilerState.NO_SUBSCRIPTION:
            return NoSubscriptionPanel()
        if subscription is None:
            return None

        plan = get_plan(subscription.plan_id)
        return SubscriptionPanel(
            plan_name=plan.name if plan else subscription.plan_id,
            status_label=subscription.status.capitalize(),
            number_of_beds=subscription.number_of_beds,
            has_boost=subscription.has_boost,
            next_billing_date=(
                format_date(subscription.current_period_end)
                if subscription.current_period_end
                else None
            ),
            cancel_at_period_end=subscription.cancel_at_period_end,
        )
