"""
Tests for billing API endpoints.

Covers all billing endpoints with mocked Stripe services.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.test import Client, RequestFactory
from ninja.errors import HttpError
from pydantic import ValidationError

from apps.billing.api import (
    cancel,
    check_promo,
    create_checkout,
    create_portal,
    get_quote,
    get_subscription,
    get_subscription_status,
    list_invoices,
    list_plans,
)
from apps.billing.models import Subscription
from apps.billing.plans import MAX_BEDS
from apps.billing.schemas import CheckoutRequest, PortalRequest, PromoCheckRequest
from apps.billing.services import SubscriptionSnapshot
from apps.core.throttling import RateLimitExceeded
from tests.accounts.factories import OwnerFactory
from tests.billing.factories import PromoCodeFactory, SubscriptionFactory, SubscriptionStatusFactory
from tests.conftest import create_authenticated_request

PERIOD_END = datetime(2026, 1, 1, tzinfo=UTC)


def make_snapshot(**overrides) -> SubscriptionSnapshot:
    values = {
        "stripe_subscription_id": "sub_123",
        "status": "active",
        "plan_id": "pro",
        "number_of_beds": 3,
        "has_boost": False,
        "current_period_end": PERIOD_END,
    }
    values.update(overrides)
    return SubscriptionSnapshot(**values)


class TestPlansAndQuote:
    """Tests for the public catalog endpoints."""

    def test_list_plans(self, request_factory: RequestFactory) -> None:
        result = list_plans(request_factory.get("/api/v1/billing/plans"))

        assert [p.id for p in result.plans] == ["basic", "pro", "elite"]
        assert result.plans[1].recommended is True
        assert result.boost_price == 49.99

    @pytest.mark.django_db
    def test_quote(self, request_factory: RequestFactory) -> None:
        """3 beds on Pro without boost is $44.97."""
        result = get_quote(request_factory.get("/"), plan_id="pro", number_of_beds="3")

        assert result.total == 44.97
        assert result.promo_message is None

    @pytest.mark.django_db
    def test_quote_coerces_bad_bed_count(self, request_factory: RequestFactory) -> None:
        result = get_quote(request_factory.get("/"), plan_id="basic", number_of_beds="-5")

        assert result.number_of_beds == 1
        assert result.total == 9.99

    @pytest.mark.django_db
    def test_quote_with_promo(self, request_factory: RequestFactory) -> None:
        PromoCodeFactory(code="TEN", discount_percentage=Decimal("10"))

        result = get_quote(
            request_factory.get("/"), plan_id="pro", number_of_beds="3", promo_code="ten"
        )

        assert result.total == 40.47
        assert result.promo_message == "Promo code applied: 10% discount"

    @pytest.mark.django_db
    def test_quote_with_invalid_promo_is_undiscounted(self, request_factory: RequestFactory) -> None:
        """An invalid code leaves the total unchanged."""
        result = get_quote(
            request_factory.get("/"), plan_id="pro", number_of_beds="3", promo_code="BOGUS"
        )

        assert result.total == 44.97
        assert result.discount_percentage == 0
        assert result.promo_message == "Invalid promo code"

    @pytest.mark.django_db
    def test_quote_at_bed_cap(self, request_factory: RequestFactory) -> None:
        result = get_quote(request_factory.get("/"), plan_id="pro", number_of_beds=str(MAX_BEDS))

        assert result.number_of_beds == MAX_BEDS
        assert result.total == 149900.00

    @pytest.mark.django_db
    @pytest.mark.parametrize("beds", [str(MAX_BEDS + 1), "1e30", "1e999999999"])
    def test_quote_caps_huge_bed_count(self, api_client: Client, beds: str) -> None:
        """Oversized bed counts are quoted at the cap, not a server error."""
        response = api_client.get("/api/v1/billing/quote", {"plan_id": "pro", "number_of_beds": beds})

        assert response.status_code == 200
        assert response.json()["number_of_beds"] == MAX_BEDS
        assert response.json()["total"] == 149900.00

    def test_quote_unknown_plan(self, request_factory: RequestFactory) -> None:
        with pytest.raises(HttpError) as exc_info:
            get_quote(request_factory.get("/"), plan_id="gold")

        assert exc_info.value.status_code == 400


@pytest.mark.django_db
class TestCheckPromo:
    """Tests for the promo code check endpoint."""

    def test_returns_single_element_list(self, request_factory: RequestFactory) -> None:
        PromoCodeFactory(code="WELCOME20")

        result = check_promo(request_factory.post("/"), PromoCheckRequest(code="WELCOME20"))

        assert len(result) == 1
        assert result[0].is_valid is True
        assert result[0].discount_percentage == 20.0

    def test_invalid_code_has_zero_discount(self, request_factory: RequestFactory) -> None:
        result = check_promo(request_factory.post("/"), PromoCheckRequest(code="NOPE"))

        assert result[0].is_valid is False
        assert result[0].discount_percentage == 0
        assert result[0].message == "Invalid promo code"

    def test_rate_limited(self, request_factory: RequestFactory) -> None:
        """Should return 429 after too many checks from one client."""
        with patch("apps.billing.api.check_rate_limit") as mock_limit:
            mock_limit.side_effect = RateLimitExceeded("Too many requests.", retry_after=300)

            with pytest.raises(HttpError) as exc_info:
                check_promo(request_factory.post("/"), PromoCheckRequest(code="ANY"))

            assert exc_info.value.status_code == 429

    def test_limit_enforced_per_client_ip(self, request_factory: RequestFactory) -> None:
        for _ in range(10):
            check_promo(
                request_factory.post("/", REMOTE_ADDR="10.0.0.1"), PromoCheckRequest(code="X")
            )

        with pytest.raises(HttpError) as exc_info:
            check_promo(request_factory.post("/", REMOTE_ADDR="10.0.0.1"), PromoCheckRequest(code="X"))
        assert exc_info.value.status_code == 429

        # Another client is unaffected
        check_promo(request_factory.post("/", REMOTE_ADDR="10.0.0.2"), PromoCheckRequest(code="X"))

    def test_wire_format(self, api_client: Client) -> None:
        """The endpoint answers with a JSON array over HTTP."""
        PromoCodeFactory(code="WIRE15", discount_percentage=Decimal("15"))

        response = api_client.post(
            "/api/v1/billing/promo-codes/check",
            data={"code": "wire15"},
            content_type="application/json",
        )

        assert response.status_code == 200
        assert response.json() == [
            {"is_valid": True, "discount_percentage": 15.0, "message": "Promo code applied: 15% discount"}
        ]


@pytest.mark.django_db
class TestGetSubscription:
    """Tests for the live subscription check endpoint."""

    @patch("apps.billing.api.check_subscription")
    def test_active_subscription(self, mock_check, request_factory: RequestFactory) -> None:
        mock_check.return_value = make_snapshot()
        request = create_authenticated_request(request_factory, "get", "/api/v1/billing/subscription")

        result = get_subscription(request)

        assert result.subscribed is True
        assert result.subscription.id == "sub_123"
        assert result.subscription.number_of_beds == 3
        assert result.subscription.current_period_end_ms == int(PERIOD_END.timestamp() * 1000)

    @patch("apps.billing.api.check_subscription", return_value=None)
    def test_not_subscribed(self, mock_check, request_factory: RequestFactory) -> None:
        """No customer or no active subscription is a normal response."""
        request = create_authenticated_request(request_factory, "get", "/api/v1/billing/subscription")

        result = get_subscription(request)

        assert result.subscribed is False
        assert result.subscription is None

    @patch("apps.billing.api.check_subscription", side_effect=Exception("stripe down"))
    def test_stripe_failure_returns_500(self, mock_check, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(request_factory, "get", "/api/v1/billing/subscription")

        with pytest.raises(HttpError) as exc_info:
            get_subscription(request)

        assert exc_info.value.status_code == 500

    def test_unauthenticated_returns_401(self, request_factory: RequestFactory) -> None:
        """Should raise 401 when not authenticated."""
        request = request_factory.get("/api/v1/billing/subscription")

        with pytest.raises(HttpError) as exc_info:
            get_subscription(request)

        assert exc_info.value.status_code == 401

    def test_cached_status(self, request_factory: RequestFactory) -> None:
        row = SubscriptionStatusFactory(beds_count=4)
        request = create_authenticated_request(
            request_factory, "get", "/api/v1/billing/subscription/status", user=row.user
        )

        result = get_subscription_status(request)

        assert result.beds_count == 4
        assert result.is_active is True

    def test_cached_status_missing(self, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(
            request_factory, "get", "/api/v1/billing/subscription/status"
        )

        with pytest.raises(HttpError) as exc_info:
            get_subscription_status(request)

        assert exc_info.value.status_code == 404


@pytest.mark.django_db
class TestCreateCheckout:
    """Tests for create_checkout endpoint."""

    @patch("apps.billing.api.create_checkout_session")
    def test_owner_can_create_checkout(
        self, mock_create_session, request_factory: RequestFactory
    ) -> None:
        """Owner gets the checkout URL; defaults return to the subscription page."""
        mock_create_session.return_value = "https://pay.example/session/abc"
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/checkout")
        payload = CheckoutRequest(plan_id="pro", number_of_beds=3, boost_enabled=False)

        result = create_checkout(request, payload)

        assert result.url == "https://pay.example/session/abc"
        kwargs = mock_create_session.call_args[1]
        assert kwargs["plan"].id == "pro"
        assert kwargs["number_of_beds"] == 3
        assert kwargs["boost_enabled"] is False
        assert kwargs["success_url"].endswith("/owner/subscription?success=true")
        assert kwargs["cancel_url"].endswith("/owner/subscription?canceled=true")
        assert kwargs["promo"] is None

    def test_family_account_rejected(self, request_factory: RequestFactory) -> None:
        """Non-owners should be rejected with 403."""
        request = create_authenticated_request(
            request_factory, "post", "/api/v1/billing/checkout", role="family"
        )

        with pytest.raises(HttpError) as exc_info:
            create_checkout(request, CheckoutRequest(plan_id="pro"))

        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize("beds", [0, MAX_BEDS + 1])
    def test_bed_count_out_of_range_rejected(self, beds: int) -> None:
        with pytest.raises(ValidationError):
            CheckoutRequest(plan_id="pro", number_of_beds=beds)

    def test_bed_count_at_cap_accepted(self) -> None:
        assert CheckoutRequest(plan_id="pro", number_of_beds=MAX_BEDS).number_of_beds == MAX_BEDS

    def test_invalid_plan(self, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/checkout")

        with pytest.raises(HttpError) as exc_info:
            create_checkout(request, CheckoutRequest(plan_id="platinum"))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Invalid plan ID"

    def test_already_subscribed(self, request_factory: RequestFactory) -> None:
        """Active subscribers are sent to the portal instead."""
        sub = SubscriptionFactory(status=Subscription.Status.ACTIVE)
        request = create_authenticated_request(
            request_factory, "post", "/api/v1/billing/checkout", user=sub.user
        )

        with pytest.raises(HttpError) as exc_info:
            create_checkout(request, CheckoutRequest(plan_id="elite"))

        assert exc_info.value.status_code == 400

    @patch("apps.billing.api.create_checkout_session", return_value="https://pay.example/x")
    def test_lapsed_subscriber_can_resubscribe(
        self, mock_create_session, request_factory: RequestFactory
    ) -> None:
        sub = SubscriptionFactory(status=Subscription.Status.CANCELED)
        request = create_authenticated_request(
            request_factory, "post", "/api/v1/billing/checkout", user=sub.user
        )

        assert create_checkout(request, CheckoutRequest(plan_id="pro")).url == "https://pay.example/x"

    def test_invalid_promo_rejected(self, request_factory: RequestFactory) -> None:
        PromoCodeFactory(code="EXPIRED", is_active=False)
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/checkout")

        with pytest.raises(HttpError) as exc_info:
            create_checkout(request, CheckoutRequest(plan_id="pro", promo_code="expired"))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "This promo code is no longer active"

    @patch("apps.billing.api.create_checkout_session", return_value="https://pay.example/x")
    def test_valid_promo_passed_through(
        self, mock_create_session, request_factory: RequestFactory
    ) -> None:
        promo = PromoCodeFactory(code="SPRING")
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/checkout")

        create_checkout(request, CheckoutRequest(plan_id="pro", promo_code="spring"))

        assert mock_create_session.call_args[1]["promo"] == promo

    @patch("apps.billing.api.create_checkout_session", side_effect=ValueError("no price"))
    def test_stripe_failure_returns_500(
        self, mock_create_session, request_factory: RequestFactory
    ) -> None:
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/checkout")

        with pytest.raises(HttpError) as exc_info:
            create_checkout(request, CheckoutRequest(plan_id="pro"))

        assert exc_info.value.status_code == 500


@pytest.mark.django_db
class TestCreatePortal:
    """Tests for create_portal endpoint."""

    @patch("apps.billing.api.create_customer_portal_session")
    def test_owner_gets_portal_url(self, mock_portal, request_factory: RequestFactory) -> None:
        mock_portal.return_value = "https://billing.stripe.com/p/session"
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/portal")

        result = create_portal(request, PortalRequest())

        assert result.url == "https://billing.stripe.com/p/session"
        assert mock_portal.call_args[1]["return_url"].endswith("/owner/subscription")

    @patch("apps.billing.api.create_customer_portal_session", side_effect=ValueError("no customer"))
    def test_no_billing_account(self, mock_portal, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/portal")

        with pytest.raises(HttpError) as exc_info:
            create_portal(request, PortalRequest(return_url="https://app.example/back"))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "No billing account set up"

    @patch("apps.billing.api.create_customer_portal_session", side_effect=RuntimeError("down"))
    def test_stripe_failure_returns_500(self, mock_portal, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(request_factory, "post", "/api/v1/billing/portal")

        with pytest.raises(HttpError) as exc_info:
            create_portal(request, PortalRequest())

        assert exc_info.value.status_code == 500


@pytest.mark.django_db
class TestCancelAndInvoices:
    """Tests for cancellation and invoice listing."""

    @patch("apps.billing.api.cancel_subscription")
    def test_cancel(self, mock_cancel, request_factory: RequestFactory) -> None:
        mock_cancel.return_value = make_snapshot(cancel_at_period_end=True)
        request = create_authenticated_request(
            request_factory, "post", "/api/v1/billing/subscription/cancel"
        )

        result = cancel(request)

        assert result.subscribed is True
        assert result.subscription.cancel_at_period_end is True

    @patch("apps.billing.api.cancel_subscription", side_effect=Subscription.DoesNotExist)
    def test_cancel_without_subscription(self, mock_cancel, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(
            request_factory, "post", "/api/v1/billing/subscription/cancel"
        )

        with pytest.raises(HttpError) as exc_info:
            cancel(request)

        assert exc_info.value.status_code == 400

    @patch("apps.billing.api.list_stripe_invoices", return_value=None)
    def test_invoices_without_customer(self, mock_list, request_factory: RequestFactory) -> None:
        request = create_authenticated_request(request_factory, "get", "/api/v1/billing/invoices")

        result = list_invoices(request)

        assert result.invoices == []
        assert result.has_more is False

    @patch("apps.billing.api.list_stripe_invoices")
    def test_invoices(self, mock_list, request_factory: RequestFactory) -> None:
        mock_list.return_value = MagicMock(
            has_more=True,
            data=[
                MagicMock(
                    id="in_1",
                    number="0001",
                    status="paid",
                    amount_due=4497,
                    amount_paid=4497,
                    currency="usd",
                    created=1_767_225_600,
                    hosted_invoice_url="https://invoice.stripe.com/i/1",
                    invoice_pdf=None,
                    period_start=None,
                    period_end=1_769_904_000,
                )
            ],
        )
        owner = OwnerFactory()
        request = create_authenticated_request(
            request_factory, "get", "/api/v1/billing/invoices", user=owner
        )

        result = list_invoices(request, limit=5)

        mock_list.assert_called_once_with(owner, limit=5, starting_after=None)
        assert result.has_more is True
        assert result.invoices[0].amount_paid == 4497
        assert result.invoices[0].created == "2026-01-01T00:00:00+00:00"
        assert result.invoices[0].period_start is None
