"""
Rate limiting for API endpoints.

Counters live in Django's cache (database cache in deployed environments) so
limits hold across processes.

Usage::

    from apps.core.throttling import check_rate_limit, RateLimitExceeded

    try:
        check_rate_limit(f"promo_check:{client_ip}", max_requests=10, window_seconds=300)
    except RateLimitExceeded as e:
        raise HttpError(429, str(e))
"""

from django.core.cache import cache

from apps.core.logging import get_logger

logger = get_logger(__name__)


class RateLimitExceeded(Exception):
    """Raised when a rate limit is exceeded."""

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def check_rate_limit(
    key: str,
    *,
    max_requests: int,
    window_seconds: int,
) -> None:
    """
    Count one request against ``key`` and raise once the window is full.

    ``cache.add()`` seeds the bucket only when it is missing, then
    ``cache.incr()`` bumps it, so concurrent requests never reset each
    other's counts.

    Raises:
        RateLimitExceeded: If more than ``max_requests`` were made in the window.
    """
    cache_key = f"rate_limit:{key}"
    cache.add(cache_key, 0, timeout=window_seconds)

    try:
        current = cache.incr(cache_key)
    except ValueError:
        # Bucket expired between add() and incr()
        cache.set(cache_key, 1, timeout=window_seconds)
        return

    if current > max_requests:
        logger.warning("rate_limit_exceeded", key=key, limit=max_requests, window=window_seconds)
        raise RateLimitExceeded(
            "Too many requests. Please try again later.",
            retry_after=window_seconds,
        )
