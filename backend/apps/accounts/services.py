"""
Auth services - sync between Stytch users and local User rows.
"""

from typing import Any

from django.db import IntegrityError, transaction

from apps.accounts import stytch_client
from apps.accounts.models import User
from apps.core.logging import get_logger

logger = get_logger(__name__)


def get_or_sync_user(session_jwt: str) -> User | None:
    """
    Validate a Stytch session JWT and return the matching local User.

    Unknown Stytch users are fetched from Stytch and created locally
    (just-in-time sync). Raises StytchError when the JWT is invalid.
    """
    client = stytch_client.get_stytch_client()
    response = client.sessions.authenticate_jwt(session_jwt=session_jwt)
    stytch_user_id = response.session.user_id

    user = User.objects.filter(stytch_user_id=stytch_user_id).first()
    if user is not None:
        return user

    stytch_user = client.users.get(user_id=stytch_user_id)
    email = _primary_email(stytch_user)
    if not email:
        logger.warning("stytch_user_without_email", stytch_user_id=stytch_user_id)
        return None

    return sync_user_from_stytch(
        stytch_user_id=stytch_user_id,
        email=email,
        name=_display_name(stytch_user),
        role=_role_from_metadata(getattr(stytch_user, "trusted_metadata", None)),
    )


@transaction.atomic
def sync_user_from_stytch(
    stytch_user_id: str,
    email: str,
    name: str = "",
    role: str = User.Role.FAMILY,
) -> User:
    """
    Get or create the local User for a Stytch user.

    Existing rows matched by email are linked to the Stytch user; the
    role on an existing row is never overwritten.
    """
    try:
        user = User.objects.select_for_update().get(email=email)
        user.stytch_user_id = stytch_user_id
        if name:
            user.name = name
        user.save(update_fields=["stytch_user_id", "name", "updated_at"])
        return user
    except User.DoesNotExist:
        try:
            with transaction.atomic():
                user = User.objects.create_user(
                    email=email,
                    name=name,
                    role=role,
                    stytch_user_id=stytch_user_id,
                )
        except IntegrityError:
            # Concurrent insert won the race, fetch the winner
            return User.objects.get(email=email)

    logger.info("user_created_from_stytch", stytch_user_id=stytch_user_id, role=role)
    return user


def _primary_email(stytch_user: Any) -> str:
    emails = getattr(stytch_user, "emails", None) or []
    return emails[0].email if emails else ""


def _display_name(stytch_user: Any) -> str:
    name = getattr(stytch_user, "name", None)
    if name is None:
        return ""
    parts = [getattr(name, "first_name", ""), getattr(name, "last_name", "")]
    return " ".join(p for p in parts if p)


def _role_from_metadata(metadata: dict | None) -> str:
    role = (metadata or {}).get("role")
    return role if role in User.Role.values else User.Role.FAMILY
