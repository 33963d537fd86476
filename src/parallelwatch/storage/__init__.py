# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Shared-store access: the hash-store contract and the group record codec.
"""

from .groups import GroupSnapshot, GroupStore
from .kv import TTL_MISSING, HashStore, RedisHashStore

__all__ = [
    "TTL_MISSING",
    "HashStore",
    "RedisHashStore",
    "GroupSnapshot",
    "GroupStore",
]
