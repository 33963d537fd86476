# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
In-process registry of completion handlers.

Registrations are `(type, handler)` pairs kept in registration order. A type
can have any number of handlers (duplicates included) and every one of them
fires for each completed group of that type. Nothing here is shared between
processes.
"""

import inspect
from collections.abc import Sequence
from dataclasses import dataclass

from .core.log import get_logger, log_context
from .core.types import Handler
from .errors import RegistryError
from .models import TaskResult


@dataclass(frozen=True)
class DispatchReport:
    invoked: int = 0
    failed: int = 0


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class CallbackRegistry:
    """Ordered `(type, handler)` sequence with per-handler error isolation."""

    def __init__(self) -> None:
        self._entries: list[tuple[str, Handler]] = []
        self.log = get_logger("registry")

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, type: str, handler: Handler) -> None:
        if not isinstance(type, str) or not type or type.strip() != type:
            raise RegistryError(f"invalid type tag: {type!r}")
        if not callable(handler):
            raise RegistryError(f"handler for {type!r} is not callable")
        self._entries.append((type, handler))
        self.log.debug("handler.registered", event="handler.registered", type=type, handler=_handler_name(handler))

    def handlers_for(self, type: str) -> list[Handler]:
        return [h for t, h in self._entries if t == type]

    async def dispatch(self, type: str, results: Sequence[TaskResult]) -> DispatchReport:
        """
        Invoke every handler registered for `type`, in order, on the caller's task.
        Each handler gets its own list. Coroutine results are awaited. A failing
        handler is logged and skipped.
        """
        invoked = failed = 0
        for handler in self.handlers_for(type):
            invoked += 1
            name = _handler_name(handler)
            with log_context(handler=name):
                try:
                    rv = handler(list(results))
                    if inspect.isawaitable(rv):
                        await rv
                except Exception:
                    failed += 1
                    self.log.error("handler.failed", event="handler.failed", type=type, exc_info=True)
        return DispatchReport(invoked=invoked, failed=failed)
