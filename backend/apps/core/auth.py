"""
Authentication context for request lifecycle.

Provides a typed container for authentication state that middleware
populates and endpoints consume.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ninja.errors import HttpError

if TYPE_CHECKING:
    from apps.accounts.models import User


@dataclass
class AuthContext:
    """
    Authentication context attached to requests by StytchAuthMiddleware.

    Endpoints receive it as ``request.auth`` once BearerAuth has accepted
    the request, so identity is passed explicitly instead of being
    re-derived from globals.

    Attributes:
        user: The authenticated User, or None if not authenticated
        session_token: The bearer session JWT the user presented
        failed: True if auth was attempted but failed (vs just not present)
    """

    user: "User | None" = None
    session_token: str = ""
    failed: bool = False

    @property
    def is_authenticated(self) -> bool:
        """Check if the request is authenticated."""
        return self.user is not None

    def require_auth(self) -> "User":
        """
        Get the authenticated user or raise 401.

        Raises:
            HttpError 401: If not authenticated
        """
        if self.user is None:
            raise HttpError(401, "Not authenticated")
        return self.user

    def require_owner(self) -> "User":
        """
        Get the authenticated user and verify the care-home owner role.

        Only owners list properties, so only owners hold subscriptions.

        Raises:
            HttpError 401: If not authenticated
            HttpError 403: If the user is not an owner
        """
        user = self.require_auth()
        if not user.is_owner:
            raise HttpError(403, "Owner account required")
        return user
