"""Fixed-window request rate limiting backed by Django's cache framework.

Usage::

    limiter = RateLimiter(window_seconds=60, max_requests=10, prefix="voucher")
    result = limiter.check(client_ip(request))
    if not result.allowed:
        ...

Counters live in the ``default`` cache, so limits are shared across worker
processes whenever the cache backend is (Redis, Memcached, database).
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.core.cache import cache

from django_conference.api import json_error
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float
    current: int

    @property
    def retry_after(self) -> int:
        """Whole seconds until the current window resets."""
        return max(1, math.ceil(self.reset_at - time.time()))


class RateLimiter:
    """Count requests per identifier within fixed time windows."""

    def __init__(self, window_seconds: int, max_requests: int, prefix: str = "default") -> None:
        """Configure the window length, request budget and cache key prefix."""
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.prefix = prefix

    def _key(self, identifier: str, now: float) -> tuple[str, float]:
        """Return the cache key for *identifier* in the window containing *now*, and its reset time."""
        index = int(now // self.window_seconds)
        return f"ratelimit:{self.prefix}:{index}:{identifier}", (index + 1) * self.window_seconds

    def check(self, identifier: str) -> RateLimitResult:
        """Record a request for *identifier* and report whether it is allowed."""
        now = time.time()
        key, reset_at = self._key(identifier, now)
        cache.add(key, 0, timeout=self.window_seconds)
        try:
            current = cache.incr(key)
        except ValueError:
            # Key evicted between add() and incr().
            cache.set(key, 1, timeout=self.window_seconds)
            current = 1

        if current > self.max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at, current=current - 1)
        return RateLimitResult(
            allowed=True,
            remaining=self.max_requests - current,
            reset_at=reset_at,
            current=current,
        )

    def peek(self, identifier: str) -> RateLimitResult | None:
        """Return the current window's state without counting a request."""
        key, reset_at = self._key(identifier, time.time())
        current = cache.get(key)
        if not current:
            return None
        current = min(int(current), self.max_requests)
        return RateLimitResult(
            allowed=current < self.max_requests,
            remaining=max(0, self.max_requests - current),
            reset_at=reset_at,
            current=current,
        )

    def reset(self, identifier: str) -> None:
        """Forget all requests recorded for *identifier* in the current window."""
        key, _ = self._key(identifier, time.time())
        cache.delete(key)


def client_ip(request: "HttpRequest") -> str:
    """Return the originating client IP, honouring common proxy headers."""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.META.get("HTTP_X_REAL_IP", "")
    if real_ip:
        return real_ip.strip()
    return request.META.get("REMOTE_ADDR") or "unknown"


class RateLimitMixin:
    """View mixin that answers 429 once a client exceeds its request budget.

    Limits come from ``DJANGO_CONFERENCE["rate_limit"]``; set
    ``rate_limit_scope`` to keep separate counters per endpoint.
    """

    rate_limit_scope: str = "default"

    def get_rate_limiter(self) -> RateLimiter:
        """Build the limiter for this view from configuration."""
        config = get_config().rate_limit
        return RateLimiter(config.window_seconds, config.max_requests, prefix=self.rate_limit_scope)

    def dispatch(self, request: "HttpRequest", *args: Any, **kwargs: Any) -> "HttpResponse":
        """Reject the request with 429 when the limit is exhausted."""
        if get_config().rate_limit.enabled:
            ip = client_ip(request)
            result = self.get_rate_limiter().check(ip)
            if not result.allowed:
                logger.warning("Rate limit exceeded for %s on %s", ip, self.rate_limit_scope)
                response = json_error("Too many requests", 429)
                response["Retry-After"] = str(result.retry_after)
                return response
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
