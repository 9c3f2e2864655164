"""
Session context for the billing client.

Identity is handed to every client component explicitly; nothing here reads
ambient auth state.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionContext:
    """
    The signed-in user as the billing client sees it.

    Attributes:
        user_id: Stable user identifier
        email: User's email address
        auth_token: Session JWT sent as the bearer token
    """

    user_id: str
    email: str
    auth_token: str

    @property
    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.auth_token}"}
