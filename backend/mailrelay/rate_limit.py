"""
Per-caller, per-route fixed-window rate limiting.

Counters live in process memory. The limiter is best-effort: it does not
coordinate across process instances, and a recycled process starts with an
empty table.

Example:
    Guarding a route::

        @router.post("/login")
        async def login(..., _: RateLimitResult = Depends(rate_limited(LOGIN_RATE_LIMIT))):
            ...
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import Request, Response

from mailrelay.errors import RateLimitedError

UNKNOWN_IDENTITY = "unknown"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Window length, request budget and rejection message for one route."""

    window_ms: int
    max_requests: int
    message: str = "Too many requests, please try again later."


LOGIN_RATE_LIMIT = RateLimitPolicy(
    window_ms=15 * 60 * 1000,
    max_requests=5,
    message="Too many login attempts, please try again later.",
)

EMAIL_RATE_LIMIT = RateLimitPolicy(
    window_ms=60 * 60 * 1000,
    max_requests=10,
    message="Too many email requests, please try again later.",
)

API_RATE_LIMIT = RateLimitPolicy(
    window_ms=15 * 60 * 1000,
    max_requests=100,
    message="Too many requests, please try again later.",
)


@dataclass
class RateRecord:
    count: int
    reset_at: float  # epoch seconds


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        """Response headers describing this result."""
        reset = datetime.fromtimestamp(self.reset_at, tz=timezone.utc)
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset.isoformat().replace("+00:00", "Z"),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """
    Fixed-window request counter keyed by ``(identity, route)``.

    Expired records are swept on every call, so memory stays proportional to
    the number of keys active within the longest window.

    Attributes:
        clock: Callable returning the current epoch time in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._records: Dict[str, RateRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def cleanup(self, now: float) -> None:
        """Drop every record whose window has already closed."""
        expired = [key for key, record in self._records.items() if record.reset_at < now]
        for key in expired:
            del self._records[key]

    def check(
        self,
        identity: str,
        route: str,
        window_ms: int,
        max_requests: int,
        now: Optional[float] = None,
    ) -> RateLimitResult:
        """
        Count one request for ``identity`` on ``route`` and decide whether it may proceed.

        A rejected request does not advance the counter.

        Args:
            identity: Caller identifier, usually the client IP.
            route: Route identifier, usually the request path.
            window_ms: Window length in milliseconds.
            max_requests: Requests allowed per window.
            now: Current epoch seconds; defaults to ``self.clock()``.

        Returns:
            RateLimitResult with ``retry_after`` (whole seconds) set when rejected.
        """
        if now is None:
            now = self.clock()
        window = window_ms / 1000.0

        self.cleanup(now)

        key = f"{identity}:{route}"
        record = self._records.get(key)

        if record is None:
            record = RateRecord(count=1, reset_at=now + window)
            self._records[key] = record
            return RateLimitResult(True, max_requests, max_requests - 1, record.reset_at)

        if record.reset_at < now:
            record.count = 1
            record.reset_at = now + window
            return RateLimitResult(True, max_requests, max_requests - 1, record.reset_at)

        if record.count >= max_requests:
            return RateLimitResult(
                allowed=False,
                limit=max_requests,
                remaining=0,
                reset_at=record.reset_at,
                retry_after=math.ceil(record.reset_at - now),
            )

        record.count += 1
        return RateLimitResult(True, max_requests, max_requests - record.count, record.reset_at)

    def reset(self) -> None:
        self._records.clear()


# Shared by every route in the process
limiter = RateLimiter()


def client_identity(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Order: first X-Forwarded-For entry, X-Real-IP, the socket peer address,
    then the literal ``"unknown"``.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_IDENTITY


def rate_limited(policy: RateLimitPolicy) -> Callable:
    """
    Build a FastAPI dependency enforcing ``policy`` on the route it guards.

    The result is stored on ``request.state.rate_limit`` so error responses
    raised later in the request carry the same headers.

    Raises:
        RateLimitedError: 429 when the caller is over budget.
    """

    async def dependency(request: Request, response: Response) -> RateLimitResult:
        result = limiter.check(
            client_identity(request),
            request.url.path,
            policy.window_ms,
            policy.max_requests,
        )
        request.state.rate_limit = result
        for name, value in result.headers().items():
            response.headers[name] = value

        if not result.allowed:
            raise RateLimitedError(policy.message, retry_after=result.retry_after)
        return result

    return dependency
