# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Completion watcher loop.

Each tick scans every live group under the namespace, reaps corrupt records,
leaves pending groups alone and dispatches complete ones to the registered
handlers before removing them. Between ticks the loop sleeps for the poll
interval. The loop runs as a cancellable asyncio task (`start` / `stop`).

Claim modes:
- claim_before_dispatch=True: the watcher deletes a complete group first and
  dispatches only if its DEL removed the record. Racing watchers (or a second
  tick) cannot fire the same group twice; a crash between claim and dispatch
  loses that group.
- claim_before_dispatch=False: dispatch, then delete. A group can fire more
  than once if another watcher observes it before the delete lands.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass

from .core.log import bind_context, get_logger, log_context, swallow, warn_once
from .core.time import Clock, SystemClock
from .core.types import GroupKey
from .errors import StoreError
from .registry import CallbackRegistry
from .storage.groups import GroupStore


@dataclass
class TickReport:
    """Counters for one pass over the namespace."""

    scanned: int = 0
    pending: int = 0
    completed: int = 0
    corrupt: int = 0
    skipped: int = 0
    errors: int = 0
    handler_failures: int = 0

    @property
    def idle(self) -> bool:
        return not (self.completed or self.corrupt or self.errors)


class GroupWatcher:
    """Polls the group store, reaps corrupt groups and dispatches completed ones."""

    def __init__(
        self,
        *,
        groups: GroupStore,
        registry: CallbackRegistry,
        poll_interval_ms: int = 1000,
        claim_before_dispatch: bool = True,
        clock: Clock | None = None,
    ) -> None:
        self.groups = groups
        self.registry = registry
        self.poll_interval_ms = poll_interval_ms
        self.claim_before_dispatch = claim_before_dispatch
        self.clock: Clock = clock or SystemClock()
        self.watcher_id = f"watcher.{uuid.uuid4().hex[:6]}"
        self.log = get_logger("watcher")
        self._task: asyncio.Task | None = None

    # ---- lifecycle

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("watcher is already running")
        self._task = asyncio.create_task(self._loop(), name=self.watcher_id)
        self._task.add_done_callback(self._on_done)
        self.log.debug("watcher.started", event="watcher.started", watcher_id=self.watcher_id)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with swallow(logger=self.log, code="watcher.stop", msg="watcher task ended with an error", level=logging.ERROR):
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.log.debug("watcher.stopped", event="watcher.stopped", watcher_id=self.watcher_id)

    async def run_forever(self) -> None:
        """Run the loop in the current task until it is cancelled."""
        await self._loop()

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            self.log.error(
                "watcher.crashed", event="watcher.crashed", watcher_id=self.watcher_id, exc_info=task.exception()
            )

    async def _loop(self) -> None:
        bind_context(watcher_id=self.watcher_id)
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    self.log.error("watcher.tick.crashed", event="watcher.tick.crashed", exc_info=True)
                await self.clock.sleep_ms(self.poll_interval_ms)
        except asyncio.CancelledError:
            return

    # ---- one pass

    async def tick(self) -> TickReport:
        report = TickReport()
        try:
            keys = await self.groups.list_group_keys()
        except StoreError as e:
            report.errors += 1
            self.log.warning("watcher.scan.failed", event="watcher.scan.failed", reason=str(e))
            return report

        report.scanned = len(keys)
        for key in keys:
            try:
                await self._process(key, report)
            except StoreError as e:
                report.errors += 1
                self.log.warning("watcher.group.retry", event="watcher.group.retry", key=key, reason=str(e))
            except Exception:
                report.errors += 1
                self.log.error("watcher.group.error", event="watcher.group.error", key=key, exc_info=True)

        if not report.idle:
            self.log.debug(
                "watcher.tick",
                event="watcher.tick",
                scanned=report.scanned,
                pending=report.pending,
                completed=report.completed,
                corrupt=report.corrupt,
                skipped=report.skipped,
                errors=report.errors,
            )
        return report

    async def _process(self, key: GroupKey, report: TickReport) -> None:
        fields = await self.groups.read_all(key)
        if not fields:
            # expired or reaped between the scan and the read
            report.skipped += 1
            return

        snap = self.groups.snapshot(key, fields)
        if snap.is_corrupt:
            await self.groups.delete(key)
            report.corrupt += 1
            self.log.warning(
                "group.reaped.corrupt",
                event="group.reaped.corrupt",
                group_id=snap.group_id,
                type=snap.type,
                count=fields.get("count"),
            )
            return

        if not snap.is_complete:
            report.pending += 1
            return

        with log_context(group_id=snap.group_id, type=snap.type):
            if self.claim_before_dispatch:
                if not await self.groups.delete(key):
                    report.skipped += 1
                    self.log.debug("group.claim.lost", event="group.claim.lost")
                    return
                dr = await self.registry.dispatch(snap.type, snap.task_results())  # type: ignore[arg-type]
            else:
                dr = await self.registry.dispatch(snap.type, snap.task_results())  # type: ignore[arg-type]
                await self.groups.delete(key)

            report.completed += 1
            report.handler_failures += dr.failed
            if dr.invoked == 0:
                warn_once(
                    self.log,
                    code=f"dispatch.no_handlers:{snap.type}",
                    msg="completed group has no registered handlers",
                    event="group.dispatch.unhandled",
                )
            self.log.info(
                "group.dispatched",
                event="group.dispatched",
                results=snap.confirmed,
                expected=snap.expected,
                handlers=dr.invoked,
                failed=dr.failed,
            )
