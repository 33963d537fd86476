# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Hash-map key/value store contract and its Redis implementation.

The tracker needs only a handful of primitives from the shared store:
- set fields of a hash (`hset_many`) and set one field only if absent (`hsetnx`),
- read every field of a hash (`hgetall`),
- set / query a key's time-to-live (`expire`, `ttl`),
- delete a key (`delete`) and list keys by prefix (`scan_prefix`).

Anything that satisfies `HashStore` can back a tracker; `RedisHashStore` is the
production implementation on top of `redis.asyncio`.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

from ..core.log import get_logger
from ..core.types import ResultValue
from ..errors import StoreError

__all__ = [
    "HashStore",
    "RedisHashStore",
    "TTL_MISSING",
]

# Returned by `ttl()` when the key does not exist.
TTL_MISSING = -1


@runtime_checkable
class HashStore(Protocol):
    """
    Minimal async hash-map store.

    Notes:
        - Keys and field names are strings; values come back as strings.
        - Every method raises StoreError on transient backend failures.
    """

    async def hset_many(self, key: str, mapping: Mapping[str, ResultValue]) -> None: ...

    async def hsetnx(self, key: str, field: str, value: ResultValue) -> bool:
        """Set `field` only if it is absent. Return True if this call wrote it."""

    async def hgetall(self, key: str) -> dict[str, str]:
        """Return every field of the hash; empty dict if the key does not exist."""

    async def expire(self, key: str, ttl_sec: int) -> bool: ...

    async def ttl(self, key: str) -> int | None:
        """
        Remaining TTL in seconds, None if the key has no TTL, or TTL_MISSING (-1)
        if the key does not exist.
        """

    async def delete(self, key: str) -> bool:
        """Delete the key. Return True if this call removed it."""

    async def scan_prefix(self, prefix: str, *, count: int = 500) -> list[str]:
        """List every key starting with `prefix` (incremental, non-blocking scan)."""

    async def aclose(self) -> None: ...


def _text(v: Any) -> str:
    return v.decode("utf-8") if isinstance(v, bytes | bytearray) else str(v)


class RedisHashStore:
    """
    `HashStore` over a `redis.asyncio.Redis` client.

    The client is injected (create it with `redis.asyncio.Redis.from_url(...)`).
    Responses are normalized to `str` whether or not the client was built with
    `decode_responses=True`.
    """

    def __init__(self, client, *, owns_client: bool = True) -> None:
        self.client = client
        self._owns_client = owns_client
        self.log = get_logger("storage.redis")

    @contextmanager
    def _wrap(self, op: str, key: str | None = None) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            raise StoreError(f"redis {op} failed for {key!r}: {e}") from e

    async def ping(self) -> bool:
        with self._wrap("ping"):
            return bool(await self.client.ping())

    async def hset_many(self, key: str, mapping: Mapping[str, ResultValue]) -> None:
        with self._wrap("hset", key):
            await self.client.hset(key, mapping=dict(mapping))

    async def hsetnx(self, key: str, field: str, value: ResultValue) -> bool:
        with self._wrap("hsetnx", key):
            return bool(await self.client.hsetnx(key, field, value))

    async def hgetall(self, key: str) -> dict[str, str]:
        with self._wrap("hgetall", key):
            raw = await self.client.hgetall(key)
        return {_text(k): _text(v) for k, v in (raw or {}).items()}

    async def expire(self, key: str, ttl_sec: int) -> bool:
        with self._wrap("expire", key):
            return bool(await self.client.expire(key, int(ttl_sec)))

    async def ttl(self, key: str) -> int | None:
        with self._wrap("ttl", key):
            rv = int(await self.client.ttl(key))
        # Redis: -2 missing key, -1 no expiry
        if rv == -2:
            return TTL_MISSING
        if rv == -1:
            return None
        return rv

    async def delete(self, key: str) -> bool:
        with self._wrap("del", key):
            return int(await self.client.delete(key)) > 0

    async def scan_prefix(self, prefix: str, *, count: int = 500) -> list[str]:
        keys: list[str] = []
        seen: set[str] = set()
        with self._wrap("scan", prefix):
            # SCAN may return a key more than once across cursor steps
            async for k in self.client.scan_iter(match=f"{prefix}*", count=count):
                sk = _text(k)
                if sk not in seen:
                    seen.add(sk)
                    keys.append(sk)
        return keys

    async def aclose(self) -> None:
        if not self._owns_client:
            return
        with self._wrap("close"):
            await self.client.aclose()
