"""
Redis client lifecycle.

One client is shared by every request handled by the process. It is created
lazily on first use, reused while it is known to be open, and discarded as
soon as a connect attempt fails or a caller reports a runtime I/O error, so
the next request reconnects from scratch.

The process may be torn down between requests, so the handle is a
best-effort cache and nothing here assumes it survives.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from redis.asyncio import Redis, from_url
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from mailrelay.config import get_redis_url
from mailrelay.errors import ConfigurationError, StoreConnectionError

logger = logging.getLogger(__name__)

# Reconnect policy: wait min(failures * 100ms, 3s), give up after 3 failures
RECONNECT_STEP_SECONDS = 0.1
RECONNECT_CAP_SECONDS = 3.0
RECONNECT_MAX_RETRIES = 3

SOCKET_TIMEOUT_SECONDS = 5.0


class ConnectionState(str, Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    OPEN = "open"
    BROKEN = "broken"


class CappedLinearBackoff(AbstractBackoff):
    """Backoff of ``failures * step`` seconds, never more than ``cap``."""

    def __init__(self, step: float = RECONNECT_STEP_SECONDS, cap: float = RECONNECT_CAP_SECONDS):
        self._step = step
        self._cap = cap

    def compute(self, failures: int) -> float:
        return min(failures * self._step, self._cap)


def _mask_url(url: str) -> str:
    return url[:20] + "..."


def create_redis_client(url: str) -> Redis:
    """
    Build an async Redis client for ``url`` with the relay's reconnect policy.

    The client does not open a socket until its first command.

    Raises:
        ValueError: if the URL scheme is not one redis-py understands
    """
    return from_url(
        url,
        # Values come back as bytes; callers decode each one
        decode_responses=False,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
        retry=Retry(CappedLinearBackoff(), RECONNECT_MAX_RETRIES),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


class StoreConnectionManager:
    """
    Owns the process-wide Redis handle.

    State machine::

        absent --acquire--> connecting --PING ok--> open
                                 |                   |
                             PING fails        mark_broken()
                                 v                   v
                               broken <--------------+
                                 |
                              acquire (starts again from connecting)

    Creation is serialized with an ``asyncio.Lock`` so concurrent first
    requests share a single connect attempt. The lock is created on first
    use and replaced when the running event loop changes.
    """

    def __init__(
        self,
        url_getter: Callable[[], Optional[str]] = get_redis_url,
        client_factory: Callable[[str], Redis] = create_redis_client,
    ):
        self._url_getter = url_getter
        self._client_factory = client_factory
        self._client: Optional[Redis] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.state = ConnectionState.ABSENT

    @property
    def is_open(self) -> bool:
        return self._client is not None and self.state is ConnectionState.OPEN

    async def acquire(self) -> Redis:
        """
        Return the shared client, connecting first if there is no open one.

        An open client is returned without a liveness round-trip; runtime
        failures are reported back through ``mark_broken``.

        Raises:
            ConfigurationError: REDIS_URL is not set or is not a valid URL
            StoreConnectionError: the connect attempt failed after the
                client's own retries
        """
        if self.is_open:
            logger.debug("Reusing existing Redis connection")
            return self._client

        async with self._get_lock():
            # Another request may have connected while we waited
            if self.is_open:
                return self._client
            return await self._connect()

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _connect(self) -> Redis:
        url = self._url_getter()
        if not url:
            logger.error("REDIS_URL is not configured")
            raise ConfigurationError(
                "Database connection error. Please check REDIS_URL configuration.",
                details="REDIS_URL is not configured",
            )

        logger.info("Creating new Redis connection (%s)", _mask_url(url))
        try:
            client = self._client_factory(url)
        except ValueError as exc:
            self.state = ConnectionState.BROKEN
            raise ConfigurationError(
                "Database connection error. Please check REDIS_URL configuration.",
                details=str(exc),
            ) from exc

        self.state = ConnectionState.CONNECTING
        logger.info("Redis client connecting...")
        try:
            await client.ping()
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            logger.error("Redis connection failed: %s", exc)
            self.state = ConnectionState.BROKEN
            self._client = None
            await self._close_client(client)
            raise StoreConnectionError(
                "Database connection error. Please check REDIS_URL configuration.",
                details=str(exc),
            ) from exc

        self._client = client
        self.state = ConnectionState.OPEN
        logger.info("Redis client ready")
        return client

    async def mark_broken(self, exc: BaseException, client: Optional[Redis] = None) -> None:
        """
        Discard the cached client after a runtime I/O error.

        ``client`` is the handle the failing command ran on. When it is no
        longer the cached one, another request has already reconnected and
        the current handle is left alone. The next ``acquire`` opens a fresh
        connection.
        """
        logger.error("Redis Client Error: %s", exc)
        if client is not None and client is not self._client:
            logger.info("Failed Redis client was already replaced")
            return
        client = self._client
        self._client = None
        self.state = ConnectionState.BROKEN
        if client is not None:
            await self._close_client(client)

    async def close(self) -> None:
        """Close the handle and return to the ``absent`` state."""
        client = self._client
        self._client = None
        self.state = ConnectionState.ABSENT
        if client is not None:
            await self._close_client(client)
            logger.info("Redis connection closed")

    @staticmethod
    async def _close_client(client: Redis) -> None:
        try:
            await client.aclose()
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            logger.warning("Error while closing Redis client: %s", exc)


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_store = StoreConnectionManager()


def get_store() -> StoreConnectionManager:
    """Return the process-wide connection manager."""
    return _store


async def get_redis() -> Redis:
    """FastAPI dependency: the shared, connected Redis client."""
    return await _store.acquire()
