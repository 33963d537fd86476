# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
ParallelWatcher: the scatter-gather tracker facade.

One instance holds its store handle, configuration, callback registry and
watcher loop. Instances are independent; several can share a store (the
namespace prefix keeps them apart) or point at the same namespace to watch
it from several processes.

Typical use:

    tracker = await ParallelWatcher.connect(WatcherConfig.load())

    @tracker.on_complete("image-resize")
    async def resized(results):
        ...

    tracker.start()
    gid = await tracker.create_group("image-resize", count=3, ttl_seconds=60)
    await tracker.confirm_task(gid, "ok", task_id="a")
"""

import copy
import logging
from typing import Any

from .core.config import WatcherConfig
from .core.log import get_logger, swallow
from .core.time import Clock
from .core.types import GroupId, Handler, ResultValue, TaskId
from .errors import ConfigError, StoreError
from .models import GroupStatus
from .registry import CallbackRegistry
from .storage.groups import GroupStore
from .storage.kv import HashStore, RedisHashStore
from .watcher import GroupWatcher, TickReport


class ParallelWatcher:
    """
    Distributed completion tracker over a shared hash store.
    `store` is injected; use `connect()` to build one from `cfg.store_url`.
    """

    def __init__(
        self,
        *,
        store: HashStore,
        cfg: WatcherConfig,
        registry: CallbackRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.cfg = copy.deepcopy(cfg)
        self.store = store
        self.registry = registry or CallbackRegistry()
        self.groups = GroupStore(store, prefix=self.cfg.key_prefix, scan_count=self.cfg.scan_count)
        self.watcher = GroupWatcher(
            groups=self.groups,
            registry=self.registry,
            poll_interval_ms=self.cfg.poll_interval_ms,
            claim_before_dispatch=self.cfg.claim_before_dispatch,
            clock=clock,
        )
        self.log = get_logger("tracker")
        self.log.debug("tracker.init", event="tracker.init", cfg=self.cfg.redacted())

    @classmethod
    async def connect(cls, cfg: WatcherConfig, *, clock: Clock | None = None, **client_kwargs: Any) -> ParallelWatcher:
        """
        Build a Redis-backed tracker from `cfg.store_url` and verify the
        connection. Any failure here is a ConfigError (fatal at setup).
        """
        from redis.asyncio import Redis

        try:
            client = Redis.from_url(cfg.store_url, decode_responses=True, **client_kwargs)
        except ValueError as e:
            raise ConfigError(f"invalid store_url: {e}") from e

        store = RedisHashStore(client)
        try:
            await store.ping()
        except StoreError as e:
            with swallow(logger=get_logger("tracker"), code="tracker.connect.close", level=logging.WARNING):
                await store.aclose()
            raise ConfigError(f"cannot reach store: {e}") from e
        return cls(store=store, cfg=cfg, clock=clock)

    # ---- producer / reporter API

    async def create_group(self, type: str, count: int, ttl_seconds: int) -> GroupId:
        """Create a group expecting `count` results; it expires after `ttl_seconds` if incomplete."""
        return await self.groups.create(type, count, ttl_seconds)

    async def confirm_task(self, group_id: GroupId, result: ResultValue, task_id: TaskId | None = None) -> bool:
        """
        Report one task result. Duplicate task ids keep the first result.
        Returns True if this call stored the result.
        """
        return await self.groups.confirm(group_id, result, task_id)

    def on_complete(self, type: str, handler: Handler | None = None):
        """
        Register a completion handler for `type`. Usable directly or as a decorator:

            tracker.on_complete("resize", handler)

            @tracker.on_complete("resize")
            def handler(results): ...
        """
        if handler is not None:
            self.registry.register(type, handler)
            return handler

        def deco(fn: Handler) -> Handler:
            self.registry.register(type, fn)
            return fn

        return deco

    async def group_status(self, group_id: GroupId) -> GroupStatus | None:
        return await self.groups.status(group_id)

    # ---- watcher lifecycle

    def start(self) -> None:
        self.watcher.start()

    async def stop(self) -> None:
        await self.watcher.stop()

    async def tick(self) -> TickReport:
        """Run a single watcher pass in the current task."""
        return await self.watcher.tick()

    async def aclose(self) -> None:
        await self.stop()
        with swallow(logger=self.log, code="tracker.store.close", msg="store close failed", level=logging.WARNING):
            await self.store.aclose()

    async def __aenter__(self) -> ParallelWatcher:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
