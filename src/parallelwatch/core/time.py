from __future__ import annotations

"""
parallelwatch.core.time
=======================

Clock abstractions used by the watcher loop:
- Clock Protocol for dependency injection.
- SystemClock: production default.
- ManualClock: deterministic time for tests (also drives the fake store's TTLs).
"""

import asyncio
import time
from typing import Protocol

from .types import Millis, MonotonicMs, TimestampMs


class Clock(Protocol):
    """Minimal clock protocol."""

    def now_ms(self) -> TimestampMs: ...
    def mono_ms(self) -> MonotonicMs: ...
    async def sleep_ms(self, ms: Millis) -> None: ...


class SystemClock:
    """Clock backed by system time and real asyncio sleeps."""

    def now_ms(self) -> TimestampMs:
        return time.time_ns() // 1_000_000

    def mono_ms(self) -> MonotonicMs:
        return time.monotonic_ns() // 1_000_000

    async def sleep_ms(self, ms: Millis) -> None:
        await asyncio.sleep(max(0.0, ms / 1000.0))


class ManualClock(SystemClock):
    """
    Controllable clock for tests.

    Time starts at `start_ms` and only moves on `advance()` or `sleep_ms()`.
    `sleep_ms` still yields to the event loop once so a polling task can be
    cancelled between ticks.
    """

    def __init__(self, start_ms: Millis = 0) -> None:
        self._now: Millis = start_ms

    def now_ms(self) -> TimestampMs:
        return self._now

    def mono_ms(self) -> MonotonicMs:
        return self._now

    def advance(self, ms: Millis) -> None:
        self._now += max(0, int(ms))

    async def sleep_ms(self, ms: Millis) -> None:
        self.advance(ms)
        await asyncio.sleep(0)
