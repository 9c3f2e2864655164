"""
Subscription state reconciliation.

The reconciler replaces the page's view of the subscription with what the
billing API reports. States::

    UNKNOWN ──▶ ACTIVE | NO_SUBSCRIPTION | ERROR
                                           │ retry()
                                           ▼
                                        UNKNOWN

There is no polling. The view is refreshed on mount, on retry() and on
remount only.

Merge policy for the plan selection: the remote view is authoritative for
status, plan, period end and the subscription panel. Selection fields the
user edited and has not yet submitted are kept; every untouched field is
taken from the remote subscription (ACTIVE) or reset to defaults
(NO_SUBSCRIPTION).

Results are applied only by the newest refresh. close() cancels the in-flight
call and invalidates every pending continuation.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from apps.billing.client.gateway import (
    BillingClientError,
    BillingGateway,
    BillingTransportError,
    RemoteSubscription,
)
from apps.billing.client.notify import Notification, Notifier, Severity
from apps.billing.client.session import SessionContext
from apps.billing.pricing import coerce_bed_count
from apps.core.logging import get_logger

logger = get_logger(__name__)


class ReconcilerState(StrEnum):
    UNKNOWN = "unknown"
    NO_SUBSCRIPTION = "no_subscription"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class SubscriptionView:
    """The subscription as last reported by the billing API."""

    subscription_id: str
    plan_id: str
    status: str
    number_of_beds: int
    has_boost: bool
    current_period_end: datetime | None
    cancel_at_period_end: bool = False

    @classmethod
    def from_remote(cls, remote: RemoteSubscription) -> "SubscriptionView":
        period_end = None
        if remote.current_period_end_ms is not None:
            period_end = datetime.fromtimestamp(remote.current_period_end_ms / 1000, tz=UTC)
        return cls(
            subscription_id=remote.id,
            plan_id=remote.plan_id,
            status=remote.status,
            number_of_beds=coerce_bed_count(remote.number_of_beds),
            has_boost=remote.has_boost,
            current_period_end=period_end,
            cancel_at_period_end=remote.cancel_at_period_end,
        )


SELECTION_FIELDS = ("selected_plan_id", "number_of_beds", "boost_enabled")


@dataclass
class BillingSelection:
    """
    The plan, bed count and boost flag the user is about to buy.

    ``touched`` holds the fields edited since the last submit.
    """

    selected_plan_id: str | None = None
    number_of_beds: int = 1
    boost_enabled: bool = False
    touched: set[str] = field(default_factory=set)

    def select_plan(self, plan_id: str) -> None:
        self.selected_plan_id = plan_id
        self.touched.add("selected_plan_id")

    def set_number_of_beds(self, value: object) -> None:
        """Set the bed count from raw input; malformed input becomes 1."""
        self.number_of_beds = coerce_bed_count(value)
        self.touched.add("number_of_beds")

    def set_boost(self, enabled: bool) -> None:
        self.boost_enabled = bool(enabled)
        self.touched.add("boost_enabled")

    def mark_submitted(self) -> None:
        self.touched.clear()

    def merge(self, view: SubscriptionView | None) -> None:
        """Take untouched fields from ``view``, or from defaults when there is none."""
        if view is not None:
            source = {
                "selected_plan_id": view.plan_id,
                "number_of_beds": view.number_of_beds,
                "boost_enabled": view.has_boost,
            }
        else:
            source = {"selected_plan_id": None, "number_of_beds": 1, "boost_enabled": False}

        for name in SELECTION_FIELDS:
            if name not in self.touched:
                setattr(self, name, source[name])


class SubscriptionReconciler:
    """Keeps the page's subscription state in step with the billing API."""

    def __init__(
        self,
        gateway: BillingGateway,
        session: SessionContext | None,
        notifier: Notifier,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.notifier = notifier
        self.state = ReconcilerState.UNKNOWN
        self.subscription: SubscriptionView | None = None
        self.selection = BillingSelection()
        self.last_error: BillingClientError | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def is_loading(self) -> bool:
        return self.state == ReconcilerState.UNKNOWN

    async def refresh(self) -> ReconcilerState:
        """Fetch the subscription status and apply it."""
        if self._closed:
            return self.state

        if self.session is None:
            self._apply(None)
            return self.state

        self._generation += 1
        generation = self._generation
        self.state = ReconcilerState.UNKNOWN

        task = asyncio.ensure_future(self.gateway.check_subscription())
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return self.state
            raise
        except BillingClientError as e:
            if generation != self._generation:
                return self.state
            self._fail(e)
            return self.state
        finally:
            if self._task is task:
                self._task = None

        if generation != self._generation:
            logger.debug("subscription_refresh_superseded", generation=generation)
            return self.state

        if result.subscribed and result.subscription is not None:
            self._apply(SubscriptionView.from_remote(result.subscription))
        else:
            self._apply(None)
        return self.state

    async def retry(self) -> ReconcilerState:
        return await self.refresh()

    def close(self) -> None:
        """Stop applying results; cancels the in-flight check."""
        self._closed = True
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _apply(self, view: SubscriptionView | None) -> None:
        self.subscription = view
        self.last_error = None
        self.selection.merge(view)
        self.state = ReconcilerState.ACTIVE if view is not None else ReconcilerState.NO_SUBSCRIPTION

    def _fail(self, error: BillingClientError) -> None:
        # Keep the previous subscription view, if any
        timed_out = isinstance(error, BillingTransportError) and error.timed_out
        logger.warning("subscription_refresh_failed", error=str(error), timed_out=timed_out)
        self.last_error = error
        self.state = ReconcilerState.ERROR
        self.notifier.notify(
            Notification(
                title="Error",
                description=(
                    "Request timed out while checking your subscription"
                    if timed_out
                    else "Failed to check subscription status"
                ),
                severity=Severity.ERROR,
            )
        )
