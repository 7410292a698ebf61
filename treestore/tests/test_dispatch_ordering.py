"""
Tests for dispatch serialization.

Critical: actions apply one at a time in submission order, re-entrant
dispatches run after the action that spawned them, and a failing action
neither corrupts the state nor stalls the queue.
"""

import asyncio
import gc
import logging

import pytest

from treestore import StoreConfig
from treestore.core import (
    ActionHandler,
    ActionsRegistry,
    EngineStatus,
    HandlerExecutionError,
    SideEffect,
)

from .helpers import append, count, increment


@pytest.mark.asyncio
async def test_counter_example(counter_registry):
    """Two concurrent increments: 0 -> 5 -> 8, with 5 observed exactly once."""
    store = await counter_registry.create_store()
    assert store.value == {"counter": 0}

    seen = []
    store.get("counter").subscribe(seen.append)

    first = store.dispatch("increment", 5)
    second = store.dispatch("increment", 3)

    assert await first == {"counter": 5}
    assert await second == {"counter": 8}
    assert store.value == {"counter": 8}
    assert seen == [0, 5, 8]


@pytest.mark.asyncio
async def test_n_concurrent_dispatches_produce_n_snapshots_in_order():
    r = ActionsRegistry()
    r.register("push", "PUSH", ActionHandler("log.items", append))
    store = await r.create_store()

    snapshots = []
    store.subscribe(snapshots.append)

    n = 50
    futures = [store.dispatch("push", i) for i in range(n)]
    results = await asyncio.gather(*futures)

    # initial snapshot + one per action, none skipped or repeated
    assert len(snapshots) == n + 1
    assert [len(s["log"]["items"]) for s in snapshots] == list(range(n + 1))
    assert store.value["log"]["items"] == tuple(range(n))
    # each future sees exactly its own transition
    assert [res["log"]["items"][-1] for res in results] == list(range(n))


@pytest.mark.asyncio
async def test_async_handlers_never_share_a_base_snapshot():
    """Slow handlers still see the result of the previous action."""

    async def slow_increment(state=0, payload=0, **_):
        await asyncio.sleep(0.001 * (payload % 3))
        return state + payload

    r = ActionsRegistry()
    r.register("add", "ADD", ActionHandler("total", slow_increment))
    store = await r.create_store()

    await asyncio.gather(*(store.dispatch("add", i) for i in range(1, 21)))

    assert store.value == {"total": sum(range(1, 21))}


@pytest.mark.asyncio
async def test_side_effect_dispatch_runs_after_its_action(counter_registry):
    """A side effect of T1 dispatching T2 queues T2 behind everything already submitted."""
    r = counter_registry
    r.register("record", "RECORD", ActionHandler("history", append))

    def on_increment(state, dispatch, type):
        dispatch("record", state["counter"])

    r.side_effect(SideEffect("INC", on_increment))
    store = await r.create_store()

    snapshots = []
    store.subscribe(snapshots.append)

    first = store.dispatch("increment", 5)
    second = store.dispatch("increment", 3)

    assert await first == {"counter": 5, "history": ()}
    await second
    await store.join()

    assert store.value == {"counter": 8, "history": (5, 8)}
    assert [(s["counter"], s["history"]) for s in snapshots] == [
        (0, ()),
        (5, ()),
        (8, ()),
        (8, (5,)),
        (8, (5, 8)),
    ]


@pytest.mark.asyncio
async def test_handler_dispatch_is_queued_not_nested():
    def start(state="idle", payload=None, dispatch=None):
        if payload is None:
            return state
        dispatch("finish", True)
        return "started"

    def finish(state="idle", payload=None, **_):
        return state if payload is None else "finished"

    r = ActionsRegistry()
    r.register("start", "START", ActionHandler("job.status", start))
    r.register("finish", "FINISH", ActionHandler("job.finished_by", lambda state=None, payload=None, **_: payload))
    r.register("finish_status", "FINISH", ActionHandler("job.final", finish))
    store = await r.create_store()

    result = await store.dispatch("start", True)

    # the start transition is published before finish runs
    assert result["job"] == {"status": "started", "finished_by": None, "final": "idle"}
    await store.join()
    assert store.value["job"] == {"status": "started", "finished_by": True, "final": "finished"}


@pytest.mark.asyncio
async def test_failing_action_is_reported_and_queue_keeps_serving():
    def guarded(state=0, payload=0, **_):
        if payload < 0:
            raise ValueError("negative")
        return state + payload

    r = ActionsRegistry()
    r.register("add", "ADD", ActionHandler("total", guarded))
    store = await r.create_store()

    ok1 = store.dispatch("add", 2)
    bad = store.dispatch("add", -1)
    ok2 = store.dispatch("add", 5)

    assert await ok1 == {"total": 2}
    with pytest.raises(HandlerExecutionError) as exc:
        await bad
    assert isinstance(exc.value.__cause__, ValueError)
    assert await ok2 == {"total": 7}
    assert store.engine.status is EngineStatus.IDLE
    assert store.engine.pending == 0


def _two_branch_registry():
    def fail_on_boom(state=None, payload=None, **_):
        if payload == "boom":
            raise RuntimeError("boom")
        return count(state)

    r = ActionsRegistry()
    r.register("good", "HIT", ActionHandler("a.good", count))
    r.register("bad", "HIT", ActionHandler("b.bad", fail_on_boom))
    return r


@pytest.mark.asyncio
async def test_failed_action_is_rolled_back_by_default():
    store = await _two_branch_registry().create_store(config=StoreConfig(rollback_on_error=True))
    before = store.value
    version = store.engine.version

    with pytest.raises(HandlerExecutionError):
        await store.dispatch({"type": "HIT", "payload": "boom"})

    assert store.value is before
    assert store.value == {"a": {"good": 0}, "b": {"bad": 0}}
    assert store.engine.version == version


@pytest.mark.asyncio
async def test_failed_action_publishes_partial_update_without_rollback():
    store = await _two_branch_registry().create_store(config=StoreConfig(rollback_on_error=False))
    before = store.value

    with pytest.raises(HandlerExecutionError):
        await store.dispatch({"type": "HIT", "payload": "boom"})

    assert store.value == {"a": {"good": 1}, "b": {"bad": 0}}
    # the previous snapshot was never touched
    assert before == {"a": {"good": 0}, "b": {"bad": 0}}


@pytest.mark.asyncio
async def test_published_snapshots_are_not_modified_later(counter_registry):
    counter_registry.register("minute", "TICK", ActionHandler("clock.minute", increment))
    store = await counter_registry.create_store()
    first = store.value

    await store.dispatch("minute", 1)

    assert first == {"counter": 0, "clock": {"minute": 0}}
    assert store.value["clock"] is not first["clock"]


@pytest.mark.asyncio
async def test_engine_status_while_dispatching(counter_registry):
    store = await counter_registry.create_store()

    fut = store.dispatch("increment", 1)
    store.dispatch("increment", 1)

    assert store.engine.is_dispatching
    assert store.engine.pending == 2
    await store.join()
    assert fut.done()
    assert store.engine.status is EngineStatus.IDLE
    assert store.value == {"counter": 2}


@pytest.mark.asyncio
async def test_cancelled_engine_cancels_in_flight_and_queued_dispatches():
    """Nobody is left waiting on a transition the engine will never finish."""
    entered = asyncio.Event()

    async def stuck(state=0, payload=None, **_):
        if payload is None:
            return state
        entered.set()
        await asyncio.Event().wait()

    r = ActionsRegistry()
    r.register("stuck", "STUCK", ActionHandler("value", stuck))
    store = await r.create_store()

    in_flight = store.dispatch("stuck", 1)
    queued = store.dispatch("stuck", 2)
    await entered.wait()

    store.engine._consumer.cancel()
    await asyncio.wait([in_flight, queued])

    assert in_flight.cancelled()
    assert queued.cancelled()
    assert store.engine.status is EngineStatus.IDLE
    assert store.value == {"value": 0}


@pytest.mark.asyncio
async def test_unawaited_failed_dispatch_is_logged_by_the_store(caplog):
    """A failing dispatch from a side effect goes through the store logger only."""

    def guarded(state=0, payload=0, **_):
        if payload < 0:
            raise ValueError("negative")
        return state + payload

    def undo(state, dispatch, type):
        if state["total"] == 1:
            dispatch("add", -1)

    r = ActionsRegistry()
    r.register("add", "ADD", ActionHandler("total", guarded))
    r.side_effect(SideEffect("ADD", undo))
    store = await r.create_store()

    with caplog.at_level(logging.WARNING):
        await store.dispatch("add", 1)
        await store.join()
        gc.collect()

    assert store.value == {"total": 1}
    assert any(
        rec.name == "treestore.core.engine" and "transition failed type=ADD" in rec.getMessage()
        for rec in caplog.records
    )
    assert not any("never retrieved" in rec.getMessage() for rec in caplog.records)
