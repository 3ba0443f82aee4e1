import asyncio

import pytest

from entity_library.lifecycle import KeyedDebouncedTask, LivenessGuard, snapshot_key

pytestmark = pytest.mark.unit


def test_snapshot_key_is_order_independent():
    assert snapshot_key({"a": 1, "b": 2}) == snapshot_key({"b": 2, "a": 1})
    assert snapshot_key({"a": 1}) != snapshot_key({"a": 2})


def test_guard_runs_close_callbacks_once():
    closed = []
    guard = LivenessGuard()
    guard.on_close(lambda: closed.append(True))
    guard.close()
    guard.close()
    assert not guard.alive
    assert closed == [True]


def test_result_of_superseded_key_is_dropped_even_if_it_completes():
    async def _inner():
        results = []
        debounced = KeyedDebouncedTask("test", delay_ms=0)

        async def stubborn():
            try:
                await asyncio.sleep(0.05)
            except asyncio.CancelledError:
                pass
            return "old"

        async def fresh():
            return "new"

        first = debounced.schedule("k1", stubborn, results.append)
        await asyncio.sleep(0.01)
        debounced.schedule("k2", fresh, results.append)

        await first
        await debounced.wait()
        assert results == ["new"]

    asyncio.run(_inner())


def test_closed_guard_drops_results():
    async def _inner():
        results = []
        guard = LivenessGuard()
        debounced = KeyedDebouncedTask("test", delay_ms=0, guard=guard)

        async def work():
            guard.close()
            return 1

        debounced.schedule("k", work, results.append)
        await debounced.wait()
        assert results == []

    asyncio.run(_inner())


def test_negative_delay_is_rejected():
    with pytest.raises(ValueError):
        KeyedDebouncedTask("test", delay_ms=-1)


def test_schedule_outside_a_loop_is_deferred_until_wait():
    results = []
    debounced = KeyedDebouncedTask("test", delay_ms=0)

    async def work():
        return "loaded"

    assert debounced.schedule("k", work, results.append) is None
    assert debounced.pending
    assert results == []

    asyncio.run(debounced.wait())

    assert results == ["loaded"]
    assert not debounced.pending


def test_cancel_drops_deferred_work():
    results = []
    debounced = KeyedDebouncedTask("test", delay_ms=0)

    async def work():
        return "loaded"

    debounced.schedule("k", work, results.append)
    debounced.cancel()

    assert not debounced.pending
    asyncio.run(debounced.wait())
    assert results == []
