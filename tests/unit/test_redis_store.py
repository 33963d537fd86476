from __future__ import annotations

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from parallelwatch import RedisHashStore, StoreError
from parallelwatch.storage.kv import TTL_MISSING, HashStore

pytestmark = [pytest.mark.unit]


def test_redis_store_satisfies_the_protocol(store):
    assert isinstance(store, HashStore)


@pytest.mark.asyncio
async def test_hsetnx_reports_whether_it_wrote(store):
    assert await store.hsetnx("k", "f", "v1") is True
    assert await store.hsetnx("k", "f", "v2") is False
    assert await store.hgetall("k") == {"f": "v1"}


@pytest.mark.asyncio
async def test_numeric_values_come_back_as_strings(store):
    await store.hset_many("k", {"count": 3, "ratio": 0.5, "raw": b"bytes"})
    assert await store.hgetall("k") == {"count": "3", "ratio": "0.5", "raw": "bytes"}


@pytest.mark.asyncio
async def test_ttl_mapping(store, fake_redis):
    assert await store.ttl("missing") == TTL_MISSING
    await store.hset_many("k", {"a": "1"})
    assert await store.ttl("k") is None
    assert await store.expire("k", 10) is True
    assert await store.ttl("k") == 10
    fake_redis.clock.advance(10_000)
    assert await store.ttl("k") == TTL_MISSING
    assert await store.expire("k", 10) is False


@pytest.mark.asyncio
async def test_bytes_responses_are_decoded():
    class BytesClient:
        async def hgetall(self, key):
            return {b"count": b"2", b"type": b"t"}

        async def scan_iter(self, match=None, count=None):
            for k in (b"p:a", b"p:b", b"p:a"):
                yield k

    s = RedisHashStore(BytesClient())
    assert await s.hgetall("p:a") == {"count": "2", "type": "t"}
    assert await s.scan_prefix("p:") == ["p:a", "p:b"]


@pytest.mark.asyncio
@pytest.mark.parametrize("op", ["hsetnx", "hgetall", "delete", "scan", "expire"])
async def test_redis_errors_become_store_errors(store, fake_redis, op):
    fake_redis.fail_next(op, exc=RedisTimeoutError("timed out"))
    calls = {
        "hsetnx": lambda: store.hsetnx("k", "f", "v"),
        "hgetall": lambda: store.hgetall("k"),
        "delete": lambda: store.delete("k"),
        "scan": lambda: store.scan_prefix("p:"),
        "expire": lambda: store.expire("k", 5),
    }
    with pytest.raises(StoreError) as ei:
        await calls[op]()
    assert isinstance(ei.value.__cause__, RedisTimeoutError)


@pytest.mark.asyncio
async def test_aclose_respects_client_ownership(fake_redis):
    await RedisHashStore(fake_redis, owns_client=False).aclose()
    assert fake_redis.closed is False
    await RedisHashStore(fake_redis).aclose()
    assert fake_redis.closed is True
