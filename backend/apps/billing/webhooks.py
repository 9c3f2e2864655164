"""
Stripe webhook handler.

Handles incoming webhooks from Stripe for checkout and subscription events.
This is a separate view (not Django Ninja) for raw request handling
needed to verify Stripe signatures.
"""

import stripe
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.billing.services import (
    handle_checkout_completed,
    handle_subscription_created,
    handle_subscription_deleted,
    handle_subscription_updated,
)
from apps.billing.stripe_client import get_stripe
from apps.core.logging import get_logger
from config.settings.base import settings

logger = get_logger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Handle Stripe webhook events.

    Verifies signature and dispatches to appropriate handler. The event's
    ``created`` time orders status row writes.
    """
    payload = request.body
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("stripe_webhook_missing_signature")
        return HttpResponse(status=400)

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("stripe_webhook_secret_not_configured")
        return HttpResponse(status=500)

    get_stripe()  # Ensure Stripe is configured
    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
        )
    except ValueError as e:
        logger.warning("stripe_webhook_invalid_payload", error=str(e))
        return HttpResponse(status=400)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook_invalid_signature", error=str(e))
        return HttpResponse(status=400)

    event_type = event["type"]
    obj = event["data"]["object"]
    created = event.get("created")
    logger.info("stripe_webhook_received", event_type=event_type, event_id=event.get("id"))

    try:
        match event_type:
            case "checkout.session.completed":
                handle_checkout_completed(obj, created)

            case "customer.subscription.created":
                handle_subscription_created(obj, created)

            case "customer.subscription.updated":
                handle_subscription_updated(obj, created)

            case "customer.subscription.deleted":
                handle_subscription_deleted(obj, created)

            case "invoice.paid":
                logger.info(
                    "stripe_invoice_paid",
                    invoice_id=obj["id"],
                    customer_id=obj["customer"],
                )

            case "invoice.payment_failed":
                logger.warning(
                    "stripe_invoice_payment_failed",
                    invoice_id=obj["id"],
                    customer_id=obj["customer"],
                )

            case _:
                logger.debug("stripe_webhook_unhandled_event", event_type=event_type)

    except Exception:
        logger.exception("stripe_webhook_handler_error", event_type=event_type)
        # Return 500 so Stripe will retry with exponential backoff
        return HttpResponse(status=500)

    return HttpResponse(status=200)
