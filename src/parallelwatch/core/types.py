from __future__ import annotations

"""
parallelwatch.core.types
========================

Shared type aliases and constants. Keep this module tiny and dependency-free.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Final, Union

# ---- Identifiers -------------------------------------------------------------

GroupId = str
GroupKey = str  # "<prefix>:<group_id>"
TaskId = str

# ---- Time --------------------------------------------------------------------

Millis = int
TimestampMs = int
MonotonicMs = int

# ---- Values ------------------------------------------------------------------

# What the store accepts as a hash field value.
ResultValue = Union[str, bytes, int, float]

# Called with the list of TaskResult of one completed group; may be async.
Handler = Callable[[Sequence[Any]], Union[None, Awaitable[Any]]]

# ---- Constants ---------------------------------------------------------------

FIELD_COUNT: Final[str] = "count"
FIELD_TYPE: Final[str] = "type"
RESERVED_FIELDS: Final[frozenset[str]] = frozenset({FIELD_COUNT, FIELD_TYPE})

DEFAULT_KEY_PREFIX: Final[str] = "parallel-watcher"


__all__ = [
    "GroupId",
    "GroupKey",
    "TaskId",
    "Millis",
    "TimestampMs",
    "MonotonicMs",
    "ResultValue",
    "Handler",
    "FIELD_COUNT",
    "FIELD_TYPE",
    "RESERVED_FIELDS",
    "DEFAULT_KEY_PREFIX",
]
