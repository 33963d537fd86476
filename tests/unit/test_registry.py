from __future__ import annotations

import logging

import pytest

from parallelwatch import CallbackRegistry, RegistryError, TaskResult
from tests.helpers import Recorder

pytestmark = [pytest.mark.unit]


def _results(gtype: str = "t", n: int = 2) -> list[TaskResult]:
    return [TaskResult(group_id="g", type=gtype, task_id=f"t{i}", result=str(i)) for i in range(n)]


@pytest.mark.asyncio
async def test_dispatch_only_matches_the_group_type():
    reg = CallbackRegistry()
    resize, thumbs = Recorder("resize"), Recorder("thumbs")
    reg.register("resize", resize)
    reg.register("thumbs", thumbs)

    report = await reg.dispatch("resize", _results("resize"))

    assert report.invoked == 1 and report.failed == 0
    assert len(resize.calls) == 1
    assert thumbs.calls == []


@pytest.mark.asyncio
async def test_handlers_fire_in_registration_order_with_identical_lists():
    order: list[str] = []
    reg = CallbackRegistry()
    first, second = Recorder("first", log=order), Recorder("second", log=order)
    reg.register("t", first)
    reg.register("other", Recorder("other", log=order))
    reg.register("t", second)

    payload = _results()
    await reg.dispatch("t", payload)

    assert order == ["first", "second"]
    assert first.calls[0] == second.calls[0] == payload
    assert first.calls[0] is not second.calls[0]


@pytest.mark.asyncio
async def test_duplicate_registration_fires_twice():
    reg = CallbackRegistry()
    rec = Recorder()
    reg.register("t", rec)
    reg.register("t", rec)
    report = await reg.dispatch("t", _results())
    assert report.invoked == 2
    assert len(rec.calls) == 2


@pytest.mark.asyncio
async def test_async_handlers_are_awaited():
    reg = CallbackRegistry()
    seen: list[int] = []

    async def handler(results):
        seen.append(len(results))

    reg.register("t", handler)
    await reg.dispatch("t", _results(n=3))
    assert seen == [3]


@pytest.mark.asyncio
async def test_failing_handler_is_isolated_and_logged(caplog):
    reg = CallbackRegistry()
    after = Recorder("after")

    def boom(results):
        raise RuntimeError("handler exploded")

    async def aboom(results):
        raise ValueError("async handler exploded")

    reg.register("t", boom)
    reg.register("t", aboom)
    reg.register("t", after)

    caplog.set_level(logging.ERROR, logger="parallelwatch")
    report = await reg.dispatch("t", _results())

    assert report.invoked == 3
    assert report.failed == 2
    assert len(after.calls) == 1
    failures = [r for r in caplog.records if getattr(r, "event", "") == "handler.failed"]
    assert len(failures) == 2
    assert all(r.exc_info for r in failures)


@pytest.mark.asyncio
async def test_dispatch_without_handlers_is_a_noop():
    reg = CallbackRegistry()
    report = await reg.dispatch("nobody", _results())
    assert report.invoked == 0


@pytest.mark.parametrize("gtype", ["", " padded", None, 3])
def test_register_rejects_bad_type_tags(gtype):
    with pytest.raises(RegistryError):
        CallbackRegistry().register(gtype, lambda r: None)


def test_register_rejects_non_callables():
    with pytest.raises(RegistryError):
        CallbackRegistry().register("t", "not callable")  # type: ignore[arg-type]
