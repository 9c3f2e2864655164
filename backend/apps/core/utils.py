"""
Core utility functions.
"""

from django.http import HttpRequest


def get_client_ip(request: HttpRequest, default: str = "unknown") -> str:
    """
    Extract client IP from X-Forwarded-For or REMOTE_ADDR.

    With a proxy chain in X-Forwarded-For the first (original client) entry wins.
    """
    x_forwarded_for: str | None = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR") or default
