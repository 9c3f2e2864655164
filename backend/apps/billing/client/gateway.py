"""
Async HTTP gateway to the billing API.

Every call carries an explicit timeout. Transport failures, non-2xx answers
and malformed bodies are raised as BillingClientError subclasses so callers
can turn them into notifications at their own boundary.
"""

import time
from decimal import Decimal
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from apps.billing.client.session import SessionContext
from apps.core.logging import get_logger
from config.settings.base import settings

logger = get_logger(__name__)


class BillingClientError(Exception):
    """Base class for billing client failures."""


class BillingTransportError(BillingClientError):
    """The request failed, timed out or was answered with an error status."""

    def __init__(
        self,
        message: str,
        *,
        timed_out: bool = False,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.timed_out = timed_out
        self.status_code = status_code
        self.detail = detail


class AuthenticationRequired(BillingClientError):
    """No session, or the session was rejected."""


class InvalidResponse(BillingClientError):
    """The response body did not have the expected shape."""


class RemoteSubscription(BaseModel):
    id: str = ""
    status: str
    plan_id: str = "basic"
    number_of_beds: int = 1
    has_boost: bool = False
    current_period_end_ms: int | None = None
    cancel_at_period_end: bool = False


class SubscriptionCheck(BaseModel):
    subscribed: bool
    subscription: RemoteSubscription | None = None


class PromoCheck(BaseModel):
    is_valid: bool
    discount_percentage: Decimal = Decimal("0")
    message: str = ""


class BillingGateway:
    """
    Client for the billing endpoints.

    Usage::

        async with BillingGateway(api_url, session=session) as gateway:
            status = await gateway.check_subscription()
    """

    def __init__(
        self,
        base_url: str,
        session: SessionContext | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self.timeout = timeout if timeout is not None else settings.BILLING_CLIENT_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "BillingGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        authenticated: bool = True,
    ) -> Any:
        headers: dict[str, str] = {}
        if authenticated:
            if self.session is None:
                raise AuthenticationRequired("No active session")
            headers.update(self.session.authorization_header)

        start_time = time.monotonic()
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("billing_request_timed_out", path=path, timeout=self.timeout)
            raise BillingTransportError(
                f"Request timed out after {self.timeout}s", timed_out=True
            ) from e
        except httpx.HTTPError as e:
            logger.warning("billing_request_failed", path=path, error=str(e))
            raise BillingTransportError(str(e)) from e

        logger.debug(
            "billing_request_completed",
            path=path,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

        if response.status_code == 401:
            raise AuthenticationRequired("Session rejected")
        if response.is_error:
            raise BillingTransportError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                detail=_error_detail(response),
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"Malformed JSON from {path}") from e

    async def check_subscription(self) -> SubscriptionCheck:
        data = await self._request("GET", "/billing/subscription")
        try:
            return SubscriptionCheck.model_validate(data)
        except ValidationError as e:
            raise InvalidResponse("Unexpected subscription check payload") from e

    async def check_promo_code(self, code: str) -> PromoCheck:
        """Validate a promo code. The endpoint answers with a single-element list."""
        data = await self._request(
            "POST", "/billing/promo-codes/check", json={"code": code}, authenticated=False
        )
        if not isinstance(data, list) or not data:
            raise InvalidResponse("Expected a non-empty list from promo code check")
        try:
            return PromoCheck.model_validate(data[0])
        except ValidationError as e:
            raise InvalidResponse("Unexpected promo code payload") from e

    async def create_checkout_session(
        self,
        plan_id: str,
        number_of_beds: int,
        boost_enabled: bool,
        promo_code: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> str:
        """Create a Stripe Checkout session and return its URL."""
        payload: dict[str, Any] = {
            "plan_id": plan_id,
            "number_of_beds": number_of_beds,
            "boost_enabled": boost_enabled,
        }
        if promo_code:
            payload["promo_code"] = promo_code
        if success_url:
            payload["success_url"] = success_url
        if cancel_url:
            payload["cancel_url"] = cancel_url

        data = await self._request("POST", "/billing/checkout", json=payload)
        return _redirect_url(data, "checkout")

    async def create_portal_session(self, return_url: str | None = None) -> str:
        """Create a Stripe Customer Portal session and return its URL."""
        payload = {"return_url": return_url} if return_url else {}
        data = await self._request("POST", "/billing/portal", json=payload)
        return _redirect_url(data, "portal")


def _redirect_url(data: Any, kind: str) -> str:
    url = data.get("url") if isinstance(data, dict) else None
    if not url:
        raise InvalidResponse(f"No {kind} URL returned")
    return url


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("detail") if isinstance(body, dict) else None
