"""
Auth API endpoints.

Login itself happens against Stytch directly from the web app; this router
only exposes the identity behind the current session.
"""

from django.http import HttpRequest
from ninja import Router

from apps.accounts.schemas import MeResponse
from apps.core.schemas import ErrorResponse
from apps.core.security import BearerAuth, get_auth_context

router = Router(tags=["auth"])
bearer_auth = BearerAuth()


@router.get(
    "/me",
    response={200: MeResponse, 401: ErrorResponse},
    auth=bearer_auth,
    operation_id="getCurrentUser",
    summary="Get current user info",
)
def get_current_user(request: HttpRequest) -> MeResponse:
    """
    Get the authenticated user.

    Requires valid session JWT in Authorization header.
    """
    user = get_auth_context(request).require_auth()
    return MeResponse(user_id=user.id, email=user.email, name=user.name, role=user.role)
