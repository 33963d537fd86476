from __future__ import annotations

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("parallelwatch")
except Exception:  # pragma: no cover
    __version__ = "0.0.0"

from .core.config import WatcherConfig
from .errors import ConfigError, ParallelWatchError, RegistryError, ReservedFieldError, StoreError
from .models import GroupStatus, TaskResult
from .registry import CallbackRegistry
from .storage import GroupStore, HashStore, RedisHashStore
from .tracker import ParallelWatcher
from .watcher import GroupWatcher, TickReport

__all__ = [
    "CallbackRegistry",
    "ConfigError",
    "GroupStatus",
    "GroupStore",
    "GroupWatcher",
    "HashStore",
    "ParallelWatchError",
    "ParallelWatcher",
    "RedisHashStore",
    "RegistryError",
    "ReservedFieldError",
    "StoreError",
    "TaskResult",
    "TickReport",
    "WatcherConfig",
    "__version__",
]
