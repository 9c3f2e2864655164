"""
Hand-off to Stripe Checkout and the Stripe Customer Portal.

A successful call ends in a full-page redirect; whether the user completed
payment is only learned on the next reconciliation.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from urllib.parse import urlencode

from apps.billing.client.gateway import (
    AuthenticationRequired,
    BillingClientError,
    BillingGateway,
    BillingTransportError,
)
from apps.billing.client.notify import Navigator, Notification, Notifier, Severity
from apps.billing.client.promo import PromoDiscount
from apps.billing.client.reconciler import BillingSelection
from apps.billing.client.session import SessionContext
from apps.billing.pricing import coerce_bed_count
from apps.core.logging import get_logger

logger = get_logger(__name__)

LOGIN_PATH = "/login"
SUBSCRIPTION_PAGE_PATH = "/owner/subscription"
MANAGE_FALLBACK_DELAY_SECONDS = 1.5


class Intent(StrEnum):
    SUBSCRIBE = "subscribe"
    MANAGE = "manage"


def login_path(intent: Intent) -> str:
    """Login page URL that returns to the subscription page with ``intent``."""
    return_to = f"{SUBSCRIPTION_PAGE_PATH}?{urlencode({'intent': intent.value})}"
    return f"{LOGIN_PATH}?{urlencode({'next': return_to})}"


class RedirectInitiator:
    """Starts checkout or portal sessions and sends the browser there."""

    def __init__(
        self,
        gateway: BillingGateway,
        session: SessionContext | None,
        notifier: Notifier,
        navigator: Navigator,
        fallback_delay: float = MANAGE_FALLBACK_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.notifier = notifier
        self.navigator = navigator
        self.fallback_delay = fallback_delay
        self._sleep = sleep
        self.is_processing = False

    def _require_login(self, intent: Intent) -> None:
        action = "subscribe" if intent == Intent.SUBSCRIBE else "manage your subscription"
        self.notifier.notify(
            Notification(
                title="Login Required",
                description=f"Please log in to {action}",
                severity=Severity.ERROR,
            )
        )
        self.navigator.navigate(login_path(intent))

    def _notify_failure(self, error: BillingClientError, title: str, description: str) -> None:
        if isinstance(error, BillingTransportError) and error.timed_out:
            description = "Request timed out. Please try again."
        self.notifier.notify(Notification(title=title, description=description, severity=Severity.ERROR))

    async def initiate_checkout(
        self,
        selection: BillingSelection,
        promo: PromoDiscount | None = None,
    ) -> bool:
        """
        Create a checkout session for ``selection`` and redirect to it.

        Returns True once the browser has been sent to Stripe.
        """
        if self.session is None:
            self._require_login(Intent.SUBSCRIBE)
            return False
        if self.is_processing:
            logger.debug("checkout_already_in_progress")
            return False
        if not selection.selected_plan_id:
            self.notifier.notify(
                Notification(title="Error", description="Please select a plan", severity=Severity.ERROR)
            )
            return False

        self.is_processing = True
        try:
            url = await self.gateway.create_checkout_session(
                plan_id=selection.selected_plan_id,
                number_of_beds=coerce_bed_count(selection.number_of_beds),
                boost_enabled=selection.boost_enabled,
                promo_code=promo.code if promo is not None and promo.is_valid else None,
            )
        except AuthenticationRequired:
            self._require_login(Intent.SUBSCRIBE)
            return False
        except BillingClientError as e:
            logger.warning("checkout_initiation_failed", error=str(e))
            self._notify_failure(e, "Error", "Failed to create checkout session")
            return False
        finally:
            self.is_processing = False

        selection.mark_submitted()
        self.navigator.redirect(url)
        return True

    async def initiate_manage(self) -> bool:
        """
        Open the Stripe Customer Portal.

        On failure the user is notified and, after a short delay, taken to
        the in-app subscription page.
        """
        if self.session is None:
            self._require_login(Intent.MANAGE)
            return False
        if self.is_processing:
            logger.debug("portal_already_in_progress")
            return False

        self.is_processing = True
        try:
            url = await self.gateway.create_portal_session()
        except AuthenticationRequired:
            self._require_login(Intent.MANAGE)
            return False
        except BillingClientError as e:
            logger.warning("portal_initiation_failed", error=str(e))
            self._notify_failure(
                e, "Portal Access Failed", "Unable to access subscription management portal."
            )
            await self._sleep(self.fallback_delay)
            self.navigator.navigate(SUBSCRIPTION_PAGE_PATH)
            return False
        finally:
            self.is_processing = False

        self.navigator.redirect(url)
        return True
