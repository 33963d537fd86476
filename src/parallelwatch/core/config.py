from __future__ import annotations

"""
parallelwatch.core.config
=========================

Typed configuration for the tracker.
- Optional JSON file loading, then env overrides, then explicit overrides.
- Derives millisecond fields from seconds to avoid repeated conversions.
- `store_url` is required; a missing or malformed URL raises ConfigError.
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from ..errors import ConfigError
from .types import DEFAULT_KEY_PREFIX

_STORE_URL_SCHEMES = ("redis", "rediss", "unix")


def _try_load_json(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


@dataclass
class WatcherConfig:
    """Tracker configuration: store location, key namespace and loop timing."""

    # ---- Store
    store_url: str = ""
    key_prefix: str = DEFAULT_KEY_PREFIX

    # ---- Watcher loop
    poll_interval_sec: float = 1.0
    # Delete (claim) a complete group before dispatching it. False keeps the
    # dispatch-then-delete order, which can fire twice under racing watchers.
    claim_before_dispatch: bool = True
    # COUNT hint for SCAN while enumerating groups
    scan_count: int = 500

    # ---- Derived (ms)
    poll_interval_ms: int = 0

    def __post_init__(self) -> None:
        if not self.store_url or not isinstance(self.store_url, str):
            raise ConfigError("store_url must be a non-empty string")
        scheme = urlsplit(self.store_url).scheme
        if scheme not in _STORE_URL_SCHEMES:
            raise ConfigError(f"store_url scheme must be one of {_STORE_URL_SCHEMES}, got {scheme!r}")
        if not self.key_prefix or not isinstance(self.key_prefix, str):
            raise ConfigError("key_prefix must be a non-empty string")
        if any(ch in self.key_prefix for ch in "*?[]"):
            raise ConfigError("key_prefix must not contain glob characters")
        if self.poll_interval_sec < 0:
            raise ConfigError("poll_interval_sec must be non-negative")
        if self.scan_count <= 0:
            raise ConfigError("scan_count must be positive")
        self.poll_interval_ms = int(self.poll_interval_sec * 1000)

    def redacted(self) -> dict[str, Any]:
        """Config as a dict with credentials stripped from the store URL (for logs)."""
        data = asdict(self)
        parts = urlsplit(self.store_url)
        if parts.password:
            netloc = f"{parts.username or ''}:***@{parts.hostname or ''}"
            if parts.port:
                netloc += f":{parts.port}"
            data["store_url"] = parts._replace(netloc=netloc).geturl()
        return data

    @classmethod
    def load(cls, path: Path | str | None = None, *, overrides: dict[str, Any] | None = None) -> WatcherConfig:
        """
        Load config from a JSON file (if provided), then apply env and overrides.

        Env overrides:
          - PARALLELWATCH_STORE_URL (falls back to REDIS_URL)
          - PARALLELWATCH_KEY_PREFIX
          - PARALLELWATCH_POLL_INTERVAL (seconds, float)
        """
        data: dict[str, Any] = {}
        data.update(_try_load_json(Path(path) if path else None))

        url = os.getenv("PARALLELWATCH_STORE_URL") or os.getenv("REDIS_URL")
        if url:
            data["store_url"] = url
        if os.getenv("PARALLELWATCH_KEY_PREFIX"):
            data["key_prefix"] = os.environ["PARALLELWATCH_KEY_PREFIX"]
        if os.getenv("PARALLELWATCH_POLL_INTERVAL"):
            try:
                data["poll_interval_sec"] = float(os.environ["PARALLELWATCH_POLL_INTERVAL"])
            except ValueError as e:
                raise ConfigError("PARALLELWATCH_POLL_INTERVAL must be a number") from e

        if overrides:
            data.update(overrides)

        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"unknown config option: {e}") from e
