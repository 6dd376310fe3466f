"""
Received-email history on a Redis list.

New records are pushed to the head of the ``emails`` list, so reading from
index 0 yields newest first. A key that does not exist yet, or that holds a
value of another type, reads as an empty history.
"""

import json
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from mailrelay.db import StoreConnectionManager, get_store
from mailrelay.errors import StoreConnectionError
from mailrelay.models.email import EmailRecord

logger = logging.getLogger(__name__)

INBOX_KEY = "emails"
DEFAULT_READ_LIMIT = 100

_EMPTY_LIST_MARKERS = ("WRONGTYPE", "no such key")


class InboxStore:
    """
    Append-only history of received email.

    Args:
        redis: Connected client from the StoreConnectionManager.
        key: List key holding the history.
        max_length: When positive, the list is trimmed to this many records
            after every append.
        connection: Manager notified when a command fails on a dead socket.
    """

    def __init__(
        self,
        redis: Redis,
        key: str = INBOX_KEY,
        max_length: int = 0,
        connection: Optional[StoreConnectionManager] = None,
    ):
        self.redis = redis
        self.key = key
        self.max_length = max_length
        self.connection = connection or get_store()

    async def _connection_lost(self, exc: Exception) -> StoreConnectionError:
        await self.connection.mark_broken(exc, self.redis)
        return StoreConnectionError(
            "Database connection error. Please check REDIS_URL configuration.",
            details=str(exc),
        )

    async def append(self, record: EmailRecord) -> int:
        """
        Push ``record`` to the head of the list.

        Returns:
            The list length after the push.

        Raises:
            StoreConnectionError: the connection dropped mid-command.
        """
        try:
            length = await self.redis.lpush(self.key, record.to_json())
            if self.max_length > 0:
                await self.redis.ltrim(self.key, 0, self.max_length - 1)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise await self._connection_lost(exc)

        logger.info("Email saved to Redis list %r, list length: %s", self.key, length)
        return length

    async def read_recent(self, limit: int = DEFAULT_READ_LIMIT) -> list[EmailRecord]:
        """
        Return up to ``limit`` records, newest first.

        Entries that are not UTF-8, not valid JSON or do not describe an
        email are logged and skipped; the rest of the read continues.

        Raises:
            StoreConnectionError: the connection dropped mid-command.
        """
        if limit <= 0:
            return []

        try:
            raw_items = await self.redis.lrange(self.key, 0, limit - 1)
        except ResponseError as exc:
            if any(marker in str(exc) for marker in _EMPTY_LIST_MARKERS):
                logger.info("List %r does not exist yet, returning empty history", self.key)
                return []
            raise
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise await self._connection_lost(exc)

        records: list[EmailRecord] = []
        for index, raw in enumerate(raw_items):
            try:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                records.append(EmailRecord.model_validate(json.loads(raw)))
            except (ValueError, TypeError) as exc:
                logger.error("Error parsing email at index %d: %s", index, exc)

        logger.info("Fetched %d emails (%d skipped)", len(records), len(raw_items) - len(records))
        return records

    async def count(self) -> int:
        """Number of stored records; 0 for a missing or mistyped key."""
        try:
            return await self.redis.llen(self.key)
        except ResponseError as exc:
            if any(marker in str(exc) for marker in _EMPTY_LIST_MARKERS):
                return 0
            raise
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise await self._connection_lost(exc)
