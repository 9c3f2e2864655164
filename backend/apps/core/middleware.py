"""
Core middleware.

StytchAuthMiddleware resolves the bearer session JWT into an AuthContext.
RequestContextMiddleware binds request-scoped fields to structured logs.
"""

import uuid
from collections.abc import Callable

from django.http import HttpRequest, HttpResponse
from stytch.core.response_base import StytchError

from apps.core.auth import AuthContext
from apps.core.logging import bind_contextvars, clear_contextvars, get_logger

logger = get_logger(__name__)

# Paths that never carry a session (webhooks are signature-verified instead)
PUBLIC_PATH_PREFIXES = (
    "/admin/",
    "/api/v1/health",
    "/api/v1/docs",
    "/api/v1/openapi.json",
    "/webhooks/",
)


class StytchAuthMiddleware:
    """
    Authenticates Stytch session JWTs and attaches an AuthContext.

    Sets ``request.auth_context`` (consumed by BearerAuth) and
    ``request.auth_user``. Local users are created just-in-time the first
    time a Stytch user presents a valid session.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request.auth_context = AuthContext()  # type: ignore[attr-defined]
        request.auth_user = None  # type: ignore[attr-defined]

        if not request.path.startswith(PUBLIC_PATH_PREFIXES):
            token = self._get_bearer_token(request)
            if token:
                self._authenticate_jwt(request, token)

        return self.get_response(request)

    @staticmethod
    def _get_bearer_token(request: HttpRequest) -> str | None:
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header.startswith("Bearer "):
            return None
        return header.removeprefix("Bearer ").strip() or None

    def _authenticate_jwt(self, request: HttpRequest, token: str) -> None:
        from apps.accounts.services import get_or_sync_user

        try:
            user = get_or_sync_user(token)
        except StytchError as e:
            logger.info(
                "session_jwt_rejected",
                error=e.details.error_message if e.details else str(e),
            )
            request.auth_context = AuthContext(failed=True)  # type: ignore[attr-defined]
            return

        if user is None or not user.is_active:
            request.auth_context = AuthContext(failed=True)  # type: ignore[attr-defined]
            return

        request.auth_context = AuthContext(user=user, session_token=token)  # type: ignore[attr-defined]
        request.auth_user = user  # type: ignore[attr-defined]


class RequestContextMiddleware:
    """
    Binds a trace id and the authenticated user to structlog context vars.

    Must run after StytchAuthMiddleware. Context is cleared after each request
    so nothing leaks between requests served by the same worker.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        correlation_id = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        bind_contextvars(correlation_id=correlation_id)

        user = getattr(request, "auth_user", None)
        if user is not None:
            bind_contextvars(**{"usr.id": str(user.id), "usr.email": user.email})

        try:
            response = self.get_response(request)
            response["X-Request-ID"] = correlation_id
            return response
        finally:
            clear_contextvars()
