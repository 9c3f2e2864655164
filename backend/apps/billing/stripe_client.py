"""
Stripe client configuration.

Provides a configured Stripe module for billing operations.
"""

from types import ModuleType

import stripe

from config.settings.base import settings

# Subscription period dates live on subscription items from this version on
STRIPE_API_VERSION = "2025-06-30.basil"

# Retries are safe: the SDK generates idempotency keys for POSTs.
STRIPE_MAX_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    """Configure Stripe API with settings."""
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES


def get_stripe() -> ModuleType:
    """
    Get configured Stripe module.

    Ensures Stripe is configured before use.
    """
    configure_stripe()
    return stripe
