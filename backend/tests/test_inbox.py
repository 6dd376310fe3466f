"""
Email inbox store tests.

Redis is mocked. The list-backed fake keeps real LPUSH / LRANGE semantics so
ordering can be checked end to end.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from mailrelay.errors import StoreConnectionError
from mailrelay.models.email import EmailRecord
from mailrelay.services.inbox import InboxStore


def _record(n: int) -> EmailRecord:
    return EmailRecord(
        id=f"em_{n}",
        from_=f"sender{n}@example.com",
        to="desk@warmthly.org",
        subject=f"Subject {n}",
        received_at=f"2026-01-0{n}T00:00:00Z",
    )


def _list_redis(initial: list | None = None) -> MagicMock:
    """MagicMock Redis backed by a Python list with head-insertion semantics."""
    items = list(initial or [])
    redis = MagicMock()

    def lpush(key, value):
        items.insert(0, value)
        return len(items)

    def lrange(key, start, stop):
        return items[start:stop + 1]

    def ltrim(key, start, stop):
        del items[stop + 1:]
        return True

    redis.lpush = AsyncMock(side_effect=lpush)
    redis.lrange = AsyncMock(side_effect=lrange)
    redis.ltrim = AsyncMock(side_effect=ltrim)
    redis.llen = AsyncMock(side_effect=lambda key: len(items))
    return redis


def _store(redis, **kwargs) -> InboxStore:
    return InboxStore(redis, connection=AsyncMock(), **kwargs)


class TestAppend:

    @pytest.mark.asyncio
    async def test_append_pushes_alias_json_to_head(self):
        redis = _list_redis()
        store = _store(redis)

        length = await store.append(_record(1))

        assert length == 1
        key, value = redis.lpush.call_args[0]
        assert key == "emails"
        assert json.loads(value) == {
            "id": "em_1",
            "from": "sender1@example.com",
            "to": "desk@warmthly.org",
            "subject": "Subject 1",
            "receivedAt": "2026-01-01T00:00:00Z",
        }

    @pytest.mark.asyncio
    async def test_append_then_read_puts_new_record_first(self):
        redis = _list_redis()
        store = _store(redis)
        for n in (1, 2, 3):
            await store.append(_record(n))

        await store.append(_record(4))
        records = await store.read_recent()

        assert [r.id for r in records] == ["em_4", "em_3", "em_2", "em_1"]

    @pytest.mark.asyncio
    async def test_append_trims_when_capped(self):
        redis = _list_redis()
        store = _store(redis, max_length=2)

        for n in (1, 2, 3):
            await store.append(_record(n))

        assert [r.id for r in await store.read_recent()] == ["em_3", "em_2"]
        redis.ltrim.assert_awaited_with("emails", 0, 1)

    @pytest.mark.asyncio
    async def test_append_does_not_trim_by_default(self):
        redis = _list_redis()
        await _store(redis).append(_record(1))
        redis.ltrim.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_marks_connection_broken(self):
        redis = MagicMock()
        redis.lpush = AsyncMock(side_effect=RedisConnectionError("Connection reset by peer"))
        connection = AsyncMock()
        store = InboxStore(redis, connection=connection)

        with pytest.raises(StoreConnectionError):
            await store.append(_record(1))

        connection.mark_broken.assert_awaited_once()


class TestReadRecent:

    @pytest.mark.asyncio
    async def test_reads_first_hundred_from_head(self):
        redis = _list_redis()
        store = _store(redis)

        await store.read_recent()

        redis.lrange.assert_awaited_once_with("emails", 0, 99)

    @pytest.mark.asyncio
    async def test_empty_list_returns_empty(self):
        assert await _store(_list_redis()).read_recent() == []

    @pytest.mark.asyncio
    async def test_wrongtype_key_reads_as_empty(self):
        redis = MagicMock()
        redis.lrange = AsyncMock(
            side_effect=ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        )

        assert await _store(redis).read_recent() == []

    @pytest.mark.asyncio
    async def test_other_response_errors_propagate(self):
        redis = MagicMock()
        redis.lrange = AsyncMock(side_effect=ResponseError("ERR max number of clients reached"))

        with pytest.raises(ResponseError):
            await _store(redis).read_recent()

    @pytest.mark.asyncio
    async def test_poison_pill_records_are_skipped(self):
        good = [_record(n).to_json() for n in (3, 2, 1)]
        redis = _list_redis([good[0], "{not json", good[1], '{"id": "missing-fields"}', "42", good[2]])

        records = await _store(redis).read_recent()

        assert [r.id for r in records] == ["em_3", "em_2", "em_1"]

    @pytest.mark.asyncio
    async def test_non_utf8_entry_is_skipped(self):
        good = [_record(n).to_json().encode() for n in (2, 1)]
        redis = _list_redis([good[0], b"\xff\xfe not utf8", good[1]])

        records = await _store(redis).read_recent()

        assert [r.id for r in records] == ["em_2", "em_1"]

    @pytest.mark.asyncio
    async def test_limit_zero_reads_nothing(self):
        redis = _list_redis([_record(1).to_json()])

        assert await _store(redis).read_recent(0) == []
        redis.lrange.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_marks_connection_broken(self):
        redis = MagicMock()
        redis.lrange = AsyncMock(side_effect=RedisConnectionError("Connection closed by server."))
        connection = AsyncMock()

        with pytest.raises(StoreConnectionError):
            await InboxStore(redis, connection=connection).read_recent()

        connection.mark_broken.assert_awaited_once()
        assert connection.mark_broken.await_args[0][1] is redis


class TestCount:

    @pytest.mark.asyncio
    async def test_count_returns_list_length(self):
        redis = _list_redis([_record(1).to_json(), _record(2).to_json()])
        assert await _store(redis).count() == 2

    @pytest.mark.asyncio
    async def test_count_of_wrongtype_key_is_zero(self):
        redis = MagicMock()
        redis.llen = AsyncMock(side_effect=ResponseError("WRONGTYPE Operation against a key"))
        assert await _store(redis).count() == 0
