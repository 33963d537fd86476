# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Group records in the shared store.

Layout: one hash per live group at "<prefix>:<group_id>" with
    count   -> expected number of results (decimal string)
    type    -> type tag used to select completion handlers
    <task>  -> raw result, one field per confirmed task (first writer wins)

The record's TTL is applied once at creation and is never refreshed, so a
group that does not complete in time simply disappears from the store.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

from pydantic import ValidationError

from ..core.log import get_logger
from ..core.types import FIELD_COUNT, FIELD_TYPE, RESERVED_FIELDS, GroupId, GroupKey, ResultValue, TaskId
from ..errors import ReservedFieldError
from ..models import CreateGroup, GroupStatus, TaskResult
from .kv import TTL_MISSING, HashStore


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class GroupSnapshot:
    """
    Parsed view of one group record as read in a single HGETALL.

    A snapshot is corrupt when `type` is missing/empty or `count` is missing,
    not an integer, or not positive.
    """

    key: GroupKey
    group_id: GroupId
    type: str | None
    expected: int | None
    results: Mapping[TaskId, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, key: GroupKey, group_id: GroupId, fields: Mapping[str, str]) -> GroupSnapshot:
        gtype = fields.get(FIELD_TYPE) or None
        expected: int | None
        try:
            expected = int(fields[FIELD_COUNT])
        except (KeyError, TypeError, ValueError):
            expected = None
        if expected is not None and expected <= 0:
            expected = None
        results = {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}
        return cls(key=key, group_id=group_id, type=gtype, expected=expected, results=results)

    @property
    def is_corrupt(self) -> bool:
        return self.type is None or self.expected is None

    @property
    def confirmed(self) -> int:
        return len(self.results)

    @property
    def is_complete(self) -> bool:
        return not self.is_corrupt and self.confirmed >= self.expected  # type: ignore[operator]

    def task_results(self) -> list[TaskResult]:
        """One TaskResult per confirmed task. Only meaningful for non-corrupt groups."""
        return [
            TaskResult(group_id=self.group_id, type=self.type or "", task_id=tid, result=value)
            for tid, value in self.results.items()
        ]


class GroupStore:
    """
    Translates group operations into hash-store primitives; owns field naming
    and the completion arithmetic.
    """

    def __init__(self, store: HashStore, *, prefix: str, scan_count: int = 500) -> None:
        self.store = store
        self.prefix = prefix
        self.scan_count = scan_count
        self.log = get_logger("groups")

    # ---- naming

    def key_for(self, group_id: GroupId) -> GroupKey:
        return f"{self.prefix}:{group_id}"

    def group_id_of(self, key: GroupKey) -> GroupId:
        head = f"{self.prefix}:"
        return key[len(head) :] if key.startswith(head) else key

    # ---- producer / reporter side

    async def create(self, type: str, count: int, ttl: int) -> GroupId:
        """Write a fresh group record and set its TTL. Returns the new group id."""
        try:
            req = CreateGroup(type=type, count=count, ttl=ttl)
        except ValidationError as e:
            raise ValueError(f"invalid group: {e.errors(include_url=False)}") from e

        group_id = new_id()
        key = self.key_for(group_id)
        await self.store.hset_many(key, {FIELD_COUNT: str(req.count), FIELD_TYPE: req.type})
        await self.store.expire(key, req.ttl)
        self.log.debug(
            "group.created", event="group.created", group_id=group_id, type=req.type, count=req.count, ttl=req.ttl
        )
        return group_id

    async def confirm(self, group_id: GroupId, result: ResultValue, task_id: TaskId | None = None) -> bool:
        """
        Record one task result with set-if-absent semantics.

        Returns True if this call stored the value, False for a duplicate task id.
        Writing into an already reaped group is not detected; the TTL is not touched.
        """
        if task_id is None:
            task_id = new_id()
        if task_id in RESERVED_FIELDS:
            raise ReservedFieldError(f"task_id {task_id!r} is reserved")
        if not task_id:
            raise ValueError("task_id must be a non-empty string")
        if isinstance(result, bool) or not isinstance(result, str | bytes | int | float):
            raise TypeError(f"result must be str, bytes, int or float, got {type(result).__name__}")

        stored = await self.store.hsetnx(self.key_for(group_id), task_id, result)
        self.log.debug(
            "group.confirmed" if stored else "group.confirm.duplicate",
            event="group.confirmed" if stored else "group.confirm.duplicate",
            group_id=group_id,
            task_id=task_id,
        )
        return stored

    # ---- watcher side

    async def list_group_keys(self) -> list[GroupKey]:
        return await self.store.scan_prefix(f"{self.prefix}:", count=self.scan_count)

    async def read_all(self, key: GroupKey) -> dict[str, str]:
        return await self.store.hgetall(key)

    async def delete(self, key: GroupKey) -> bool:
        return await self.store.delete(key)

    async def ttl(self, group_id: GroupId) -> int | None:
        """Remaining TTL in seconds, or None if the group no longer exists (or never expires)."""
        rv = await self.store.ttl(self.key_for(group_id))
        return None if rv == TTL_MISSING else rv

    def snapshot(self, key: GroupKey, fields: Mapping[str, str]) -> GroupSnapshot:
        return GroupSnapshot.parse(key, self.group_id_of(key), fields)

    async def load(self, key: GroupKey) -> GroupSnapshot | None:
        """Read and parse one record; None if it no longer exists."""
        fields = await self.read_all(key)
        if not fields:
            return None
        return self.snapshot(key, fields)

    async def status(self, group_id: GroupId) -> GroupStatus | None:
        key = self.key_for(group_id)
        snap = await self.load(key)
        if snap is None:
            return None
        ttl = await self.store.ttl(key)
        if ttl == TTL_MISSING:
            # expired between the two reads
            return None
        return GroupStatus(
            group_id=group_id,
            type=snap.type,
            expected=snap.expected,
            confirmed=snap.confirmed,
            ttl_sec=ttl,
            corrupt=snap.is_corrupt,
        )
