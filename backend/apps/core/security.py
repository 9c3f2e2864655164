"""
Core security - authentication classes for API.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any

from django.http import HttpRequest
from ninja.errors import HttpError
from ninja.security import HttpBearer

from apps.core.auth import AuthContext


class BearerAuth(HttpBearer):
    """
    Bearer token authentication for API endpoints.

    Actual JWT validation is performed by StytchAuthMiddleware, which stores
    the resolved AuthContext on ``request.auth_context``. This class hands that
    context to Django Ninja (it becomes ``request.auth``) and documents the
    OpenAPI security scheme.
    """

    def authenticate(self, request: HttpRequest, token: str) -> AuthContext | None:
        """
        Return the middleware's auth context if it is authenticated.

        Returns None otherwise (triggers 401).
        """
        if not token:
            return None
        context = getattr(request, "auth_context", None)
        if context is None or not context.is_authenticated:
            return None
        return context


def get_auth_context(request: HttpRequest) -> AuthContext:
    """
    Get the AuthContext for a request or raise 401.

    Accepts the context under ``request.auth`` (set by Django Ninja or tests).
    """
    auth = getattr(request, "auth", None)
    if not isinstance(auth, AuthContext):
        raise HttpError(401, "Not authenticated")
    return auth


def require_owner(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Restrict an endpoint to authenticated care-home owners.

    Raises 401 when unauthenticated and 403 for family accounts.
    """

    @wraps(func)
    def wrapper(request: HttpRequest, *args: Any, **kwargs: Any) -> Any:
        get_auth_context(request).require_owner()
        return func(request, *args, **kwargs)

    return wrapper
