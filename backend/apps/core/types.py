"""
Custom type definitions for the application.

These types help mypy understand custom attributes added by middleware.
"""

from typing import TYPE_CHECKING

from django.http import HttpRequest

from apps.core.auth import AuthContext

if TYPE_CHECKING:
    from apps.accounts.models import User


class AuthenticatedHttpRequest(HttpRequest):
    """
    HttpRequest with authentication context added by StytchAuthMiddleware.

    Use this type for endpoints that require authentication.
    The middleware populates these attributes from JWT validation.
    """

    auth: AuthContext
    auth_context: AuthContext
    auth_user: "User | None"
