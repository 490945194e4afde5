"""
Rate limiting for the public endpoints
"""
import logging
import time

from fastapi import Request
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter

from lumeo.core.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request, checking for proxy headers first
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


# Coarse per-IP limit applied with @limiter.limit on the routes
limiter = Limiter(key_func=get_client_ip, storage_uri=settings.rate_limit_storage_uri)


class SignupRateLimiter:
    """
    Sliding-window throttle keyed by ``ip:email``.

    Backed by a ``limits`` storage: ``memory://`` keeps counters in this
    process only and loses them on restart, a ``redis://`` URI shares them
    across instances. Best effort only, not a security boundary.
    """

    def __init__(self, limit: str, storage_uri: str = "memory://"):
        self.item = parse(limit)
        self.storage = storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.enabled = True

    @staticmethod
    def key(ip: str, email: str) -> str:
        return f"{ip}:{email}"

    def hit(self, ip: str, email: str) -> bool:
        """Record an attempt; False when the window is already full"""
        if not self.enabled:
            return True
        allowed = self.strategy.hit(self.item, "signup", self.key(ip, email))
        if not allowed:
            logger.warning("Signup rate limit hit for ip=%s", ip)
        return allowed

    def retry_after(self, ip: str, email: str) -> int:
        reset_at, _remaining = self.strategy.get_window_stats(self.item, "signup", self.key(ip, email))
        return max(1, int(reset_at - time.time()))

    def reset(self) -> None:
        self.storage.reset()


signup_limiter = SignupRateLimiter(settings.signup_rate_limit, settings.rate_limit_storage_uri)
