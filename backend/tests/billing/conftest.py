"""
Billing test fixtures.
"""

import pytest

from config.settings.base import settings


@pytest.fixture
def stripe_prices(monkeypatch):
    """Configure Stripe price IDs for every plan and the boost add-on."""
    prices = {
        "STRIPE_PRICE_ID_BASIC": "price_basic_test",
        "STRIPE_PRICE_ID_PRO": "price_pro_test",
        "STRIPE_PRICE_ID_ELITE": "price_elite_test",
        "STRIPE_PRICE_ID_BOOST": "price_boost_test",
    }
    for name, value in prices.items():
        monkeypatch.setattr(settings, name, value)
    return prices


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    return "whsec_test"
