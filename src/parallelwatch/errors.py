# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Error taxonomy for parallelwatch.

Producers and reporters see `StoreError` for failures surfaced by the store
adapter and `ReservedFieldError` for invalid task ids. The watcher loop never
propagates store or handler errors; it logs them and moves on.
"""


class ParallelWatchError(Exception):
    """Base class for all parallelwatch errors."""

    ...


class ConfigError(ParallelWatchError, ValueError):
    """
    Store connection parameters are missing or invalid, or the store could not
    be reached during setup. Fatal: the tracker must not start.
    """

    ...


class StoreError(ParallelWatchError):
    """
    The shared store failed transiently (network blip, timeout, server error).
    Inside the watcher the affected group is retried on the next tick.
    """

    ...


class ReservedFieldError(ParallelWatchError, ValueError):
    """A task id collides with a reserved group field (`type` or `count`)."""

    ...


class RegistryError(ParallelWatchError):
    """Raised when a callback registration is invalid."""

    ...
