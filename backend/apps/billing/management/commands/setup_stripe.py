"""
Management command to set up Stripe products and prices.

Run once per environment to create a product and monthly price for every
plan (per bed) and for the boost add-on (flat).
Usage: python manage.py setup_stripe
"""

from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError

from apps.billing.plans import BOOST_PRICE, PLANS
from apps.billing.services import BOOST_ADDON_NAME
from apps.billing.stripe_client import get_stripe
from config.settings.base import settings

APP_TAG = "carehomes"


def to_cents(amount: Decimal) -> int:
    return int(amount * 100)


class Command(BaseCommand):
    help = "Set up Stripe products and prices for the subscription plans and boost add-on"

    def add_arguments(self, parser):
        parser.add_argument(
            "--currency",
            type=str,
            default="usd",
            help="Currency code (default: usd)",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Create new products/prices even if they exist",
        )

    def handle(self, *args, **options):
        if not settings.STRIPE_SECRET_KEY:
            raise CommandError("STRIPE_SECRET_KEY not set. Add it to your .env file first.")

        currency = options["currency"]
        env_lines = []

        for plan in PLANS:
            price_id = self._ensure_price(
                name=f"{plan.name} Plan",
                description=plan.description,
                metadata={"app": APP_TAG, "type": "plan", "plan_id": plan.id},
                search=f"metadata['type']:'plan' AND metadata['plan_id']:'{plan.id}'",
                unit_amount=to_cents(plan.price_per_bed),
                currency=currency,
                force=options["force"],
            )
            env_lines.append(f"STRIPE_PRICE_ID_{plan.id.upper()}={price_id}")

        boost_price_id = self._ensure_price(
            name="Boost Add-on",
            description="Featured placement boost",
            metadata={"app": APP_TAG, "type": "addon", "name": BOOST_ADDON_NAME},
            search=f"metadata['type']:'addon' AND metadata['name']:'{BOOST_ADDON_NAME}'",
            unit_amount=to_cents(BOOST_PRICE),
            currency=currency,
            force=options["force"],
        )
        env_lines.append(f"STRIPE_PRICE_ID_BOOST={boost_price_id}")

        self.stdout.write(
            self.style.SUCCESS(
                "\nStripe setup complete!\nAdd this to your .env:\n\n" + "\n".join(env_lines) + "\n"
            )
        )
        self.stdout.write(
            self.style.NOTICE(
                "\nDon't forget to set up your webhook endpoint:\n"
                "   Stripe Dashboard → Developers → Webhooks\n"
                "   URL: https://your-domain.com/webhooks/stripe/\n"
                "   Events: checkout.session.completed, customer.subscription.*, invoice.*\n"
            )
        )

    def _ensure_price(
        self,
        *,
        name: str,
        description: str,
        metadata: dict,
        search: str,
        unit_amount: int,
        currency: str,
        force: bool,
    ) -> str:
        """Return the active monthly price for a product, creating either as needed."""
        stripe = get_stripe()
        product = None

        if not force:
            products = stripe.Product.search(
                query=f"metadata['app']:'{APP_TAG}' AND {search} AND active:'true'"
            )
            if products.data:
                product = products.data[0]
                prices = stripe.Price.list(product=product.id, active=True, type="recurring")
                if prices.data:
                    self.stdout.write(
                        self.style.WARNING(f"{name}: found existing price {prices.data[0].id}")
                    )
                    return prices.data[0].id

        if product is None:
            product = stripe.Product.create(name=name, description=description, metadata=metadata)
            self.stdout.write(f"{name}: created product {product.id}")

        price = stripe.Price.create(
            product=product.id,
            unit_amount=unit_amount,
            currency=currency,
            recurring={"interval": "month", "usage_type": "licensed"},
            billing_scheme="per_unit",
            metadata=metadata,
        )
        self.stdout.write(f"{name}: created price {price.id}")
        return price.id
