"""
Shared pytest fixtures for all tests.

This module provides common fixtures used across multiple test modules.
Individual test modules can override these fixtures if needed.

Factories
---------
Import factories directly from their modules:

    from tests.accounts.factories import UserFactory, OwnerFactory
    from tests.billing.factories import SubscriptionFactory, PromoCodeFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        owner = OwnerFactory.create(email="owner@example.com")
        subscription = SubscriptionFactory.create(user=owner, number_of_beds=3)
"""

from typing import Any, cast

import pytest
from django.core.cache import cache
from django.http import HttpRequest
from django.test import Client, RequestFactory
from django.test.client import WSGIRequest  # type: ignore[attr-defined]

from apps.core.auth import AuthContext
from apps.core.types import AuthenticatedHttpRequest


class MockRequest(HttpRequest):
    """
    HttpRequest subclass for tests that allows setting auth attribute.

    Example:
        request = MockRequest()
        request.auth = AuthContext(user=user)
    """

    auth: AuthContext


def make_request_with_auth(request: "WSGIRequest", auth: AuthContext) -> AuthenticatedHttpRequest:
    """
    Set auth on a request and return it typed as AuthenticatedHttpRequest.

    Example:
        request = request_factory.get("/api/v1/endpoint")
        request = make_request_with_auth(request, AuthContext(user=user))
    """
    request.auth = auth  # type: ignore[attr-defined]
    return cast(AuthenticatedHttpRequest, request)


@pytest.fixture(autouse=True)
def _clear_cache():
    """Rate limit counters live in the cache; start every test empty."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def request_factory() -> RequestFactory:
    """
    Django request factory for unit testing views.

    Use this when you need to test view functions directly without going through
    the full HTTP stack. Useful for testing Django Ninja endpoints.
    """
    return RequestFactory()


@pytest.fixture
def api_client() -> Client:
    """
    Django test client for full HTTP request/response cycle tests.

    Example:
        def test_api_returns_200(api_client):
            response = api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    return Client()


def create_authenticated_request(
    request_factory: RequestFactory,
    method: str,
    path: str,
    user: Any = None,
    role: str = "owner",
    data: dict | None = None,
) -> AuthenticatedHttpRequest:
    """
    Helper to create an authenticated request.

    Creates the user if not provided.

    Args:
        request_factory: Django RequestFactory instance
        method: HTTP method (get, post, delete, patch, put)
        path: Request path
        user: Optional User instance (created if None)
        role: Role for a created user (default: "owner")
        data: Optional JSON body

    Returns:
        Request object with request.auth set
    """
    from tests.accounts.factories import UserFactory

    if user is None:
        user = UserFactory.create(role=role)

    method_func = getattr(request_factory, method.lower())
    kwargs: dict[str, Any] = {}
    if data is not None:
        kwargs["data"] = data
        kwargs["content_type"] = "application/json"
    request = method_func(path, **kwargs)

    return make_request_with_auth(request, AuthContext(user=user, session_token="test-jwt"))


@pytest.fixture
def owner(db):
    """
    Create a care-home owner.

    Example:
        def test_owner_action(owner):
            assert owner.is_owner
    """
    from tests.accounts.factories import OwnerFactory

    return OwnerFactory.create()


@pytest.fixture
def family_user(db):
    """Create a family account (not allowed to subscribe)."""
    from tests.accounts.factories import UserFactory

    return UserFactory.create(role="family")
