"""
Auth API schemas.
"""

from ninja import Schema


class MeResponse(Schema):
    """Identity of the current session."""

    user_id: int
    email: str
    name: str
    role: str
