# conftest.py
from __future__ import annotations

import os
import uuid

import pytest
import pytest_asyncio

from parallelwatch import ParallelWatcher, RedisHashStore, WatcherConfig
from parallelwatch.core.log import (
    bind_context,
    configure_from_env,
    enable_stdout_logging,
    get_logger,
    log_context,
)
from parallelwatch.core.time import ManualClock
from tests.helpers import STORE_URL, FakeRedis


def pytest_addoption(parser):
    parser.addoption(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit parallelwatch logs in JSON format during tests",
    )


@pytest.fixture(scope="session", autouse=True)
def _configure_logging(request):
    configure_from_env()
    prefer_json = request.config.getoption("--log-json")
    if os.getenv("PARALLELWATCH_LOG_STDOUT", "").lower() not in ("1", "true", "yes", "on"):
        enable_stdout_logging(
            level="DEBUG",
            json_output=prefer_json,
            pretty=not prefer_json,
            route_errors_to_stderr=True,
        )
    bind_context(role="pytest")


@pytest.fixture(scope="session")
def session_run_id():
    return uuid.uuid4().hex[:8]


@pytest.fixture(autouse=True)
def _test_log_context(request, session_run_id):
    log = get_logger("test")
    with log_context(test=request.node.name, test_run=session_run_id):
        log.debug("pytest.test.start", event="pytest.test.start")
        yield


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PARALLELWATCH_STORE_URL", "REDIS_URL", "PARALLELWATCH_KEY_PREFIX", "PARALLELWATCH_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def fake_redis(manual_clock):
    return FakeRedis(manual_clock)


@pytest.fixture
def store(fake_redis):
    return RedisHashStore(fake_redis)


def _cfg_overrides_from_marker(request) -> dict:
    m = request.node.get_closest_marker("cfg")
    return dict(m.kwargs) if m else {}


@pytest.fixture
def cfg(request):
    overrides = {"store_url": STORE_URL, "poll_interval_sec": 0.01, **_cfg_overrides_from_marker(request)}
    return WatcherConfig.load(overrides=overrides)


@pytest_asyncio.fixture
async def tracker(store, cfg):
    t = ParallelWatcher(store=store, cfg=cfg)
    try:
        yield t
    finally:
        await t.stop()


@pytest.fixture
def tracker_factory(store, cfg):
    """Extra trackers over the same fake store (simulates other processes)."""

    def _make(**overrides):
        c = WatcherConfig.load(overrides={**cfg.__dict__, **overrides})
        return ParallelWatcher(store=store, cfg=c)

    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "cfg(**overrides): per-test WatcherConfig overrides")
