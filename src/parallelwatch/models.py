# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
parallelwatch models
====================

Pydantic v2 models for what crosses the public API:
- `CreateGroup`: validated producer request (type, count, ttl).
- `TaskResult`: one confirmed task as delivered to completion handlers.
- `GroupStatus`: point-in-time view of a live group.

Models use `extra="forbid"` to fail fast on unknown fields.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.types import RESERVED_FIELDS


class CreateGroup(BaseModel):
    """Producer request for a new group."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: str = Field(min_length=1)
    count: int = Field(gt=0)
    ttl: int = Field(gt=0, description="Seconds until the store expires an incomplete group.")

    @field_validator("type")
    @classmethod
    def _no_surrounding_ws(cls, v: str) -> str:
        if v.strip() != v:
            raise ValueError("type must not have leading/trailing whitespace")
        return v


class TaskResult(BaseModel):
    """
    One confirmed task of a completed group.

    Fields:
        group_id: Group identifier (without the key prefix).
        type: The group's type tag.
        task_id: Reporter-supplied or generated task identifier.
        result: Raw value as stored.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    group_id: str
    type: str
    task_id: str
    result: str

    @field_validator("task_id")
    @classmethod
    def _not_reserved(cls, v: str) -> str:
        if v in RESERVED_FIELDS:
            raise ValueError(f"task_id {v!r} is reserved")
        return v


class GroupStatus(BaseModel):
    """Snapshot of a live group as seen in the store."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    group_id: str
    type: str | None
    expected: int | None
    confirmed: int
    ttl_sec: int | None = Field(default=None, description="Remaining TTL; None when the record has no expiry.")
    corrupt: bool = False

    @property
    def complete(self) -> bool:
        return not self.corrupt and self.expected is not None and self.confirmed >= self.expected
