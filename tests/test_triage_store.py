from __future__ import annotations

import random

import pytest

from conftest import FlakySubstrate, run
from core.errors import StoreUnavailable
from core.models import BrowsePosition, TriageState
from core.services.triage_store import (
    KEPT_KEY,
    MARKED_KEY,
    POSITION_INDEX_KEY,
    POSITION_TOTAL_KEY,
    TriageStore,
)
from infrastructure.kv_store import MemoryKeyValueStore


def _durable_sets(substrate: MemoryKeyValueStore) -> tuple[set[str], set[str]]:
    return (
        substrate.get_string_set(KEPT_KEY) or set(),
        substrate.get_string_set(MARKED_KEY) or set(),
    )


def test_flip_moves_id_between_sets(store, substrate):
    async def scenario():
        await store.mark_kept("p1")
        await store.mark_for_deletion("p1")

    run(scenario())

    assert store.state("p1") is TriageState.MARKED_FOR_DELETION
    assert not store.is_kept("p1")
    assert store.is_marked_for_deletion("p1")
    kept, marked = _durable_sets(substrate)
    assert kept == set()
    assert marked == {"p1"}


def test_random_operations_keep_sets_disjoint(store, substrate):
    rng = random.Random(7)
    ids = [f"p{i}" for i in range(6)]
    ops = [store.mark_kept, store.mark_for_deletion, store.unmark]

    async def scenario():
        for _ in range(200):
            await rng.choice(ops)(rng.choice(ids))
            kept, marked = store.kept_ids(), store.marked_ids()
            assert not kept & marked
            durable_kept, durable_marked = _durable_sets(substrate)
            assert not durable_kept & durable_marked
            assert durable_kept == kept
            assert durable_marked == marked

    run(scenario())


def test_unmark_returns_to_unprocessed(store, substrate):
    async def scenario():
        await store.mark_for_deletion("p1")
        await store.unmark("p1")
        # Unmarking an unprocessed id is a no-op
        await store.unmark("p2")

    run(scenario())

    assert store.state("p1") is TriageState.UNPROCESSED
    assert store.state("p2") is TriageState.UNPROCESSED
    assert _durable_sets(substrate) == (set(), set())


def test_state_survives_reload(substrate):
    async def scenario(store):
        await store.mark_kept("a")
        await store.mark_for_deletion("b")
        await store.save_position(4, 10)

    run(scenario(TriageStore(substrate)))

    reloaded = TriageStore(substrate)
    assert reloaded.state("a") is TriageState.KEPT
    assert reloaded.state("b") is TriageState.MARKED_FOR_DELETION
    assert reloaded.state("c") is TriageState.UNPROCESSED
    assert reloaded.load_position() == BrowsePosition(index=4, total=10)


def test_id_in_both_sets_loads_as_kept(substrate):
    substrate.set_string_set(KEPT_KEY, ["x", "y"])
    substrate.set_string_set(MARKED_KEY, ["y", "z"])

    store = TriageStore(substrate)

    assert store.kept_ids() == {"x", "y"}
    assert store.marked_ids() == {"z"}


@pytest.mark.parametrize(
    ("index", "total", "expected"),
    [
        (5, 3, BrowsePosition(index=2, total=3)),
        (1, 10, BrowsePosition(index=1, total=10)),
        (0, 0, BrowsePosition(index=0, total=0)),
        (7, 0, BrowsePosition(index=0, total=0)),
    ],
)
def test_load_position_is_clamped(store, index, total, expected):
    run(store.save_position(index, total))

    assert store.load_position() == expected


def test_clear_all_is_idempotent(store, substrate):
    async def scenario():
        await store.mark_kept("a")
        await store.mark_for_deletion("b")
        await store.save_position(1, 2)
        await store.clear_all()
        await store.clear_all()

    run(scenario())

    assert store.kept_ids() == set()
    assert store.marked_ids() == set()
    assert store.load_position() == BrowsePosition()
    assert substrate.snapshot() == {}


def test_clear_marked_keeps_kept(store, substrate):
    async def scenario():
        await store.mark_kept("a")
        await store.mark_for_deletion("b")
        await store.mark_for_deletion("c")
        await store.clear_marked()

    run(scenario())

    assert store.kept_ids() == {"a"}
    assert store.marked_ids() == set()
    assert _durable_sets(substrate) == ({"a"}, set())


def test_keep_all_flips_marked_ids(store, substrate):
    async def scenario():
        await store.mark_for_deletion("a")
        await store.mark_for_deletion("b")
        await store.keep_all(["a", "b", "c"])

    run(scenario())

    assert store.kept_ids() == {"a", "b", "c"}
    assert _durable_sets(substrate) == ({"a", "b", "c"}, set())


def test_forget_removes_ids_and_reports_deleted(store, substrate):
    async def scenario():
        await store.mark_for_deletion("a")
        await store.mark_kept("b")
        await store.forget(["a"])

    run(scenario())

    assert store.state("a") is TriageState.DELETED
    assert store.stats().marked_count == 0
    assert store.stats().kept_count == 1
    assert _durable_sets(substrate) == ({"b"}, set())


def test_forgotten_id_can_be_triaged_again(store):
    async def scenario():
        await store.mark_for_deletion("a")
        await store.forget(["a"])
        await store.mark_kept("a")

    run(scenario())

    assert store.state("a") is TriageState.KEPT


def test_stats_counts_both_sets(store):
    async def scenario():
        await store.mark_kept("a")
        await store.mark_kept("b")
        await store.mark_for_deletion("c")

    run(scenario())

    stats = store.stats()
    assert (stats.kept_count, stats.marked_count) == (2, 1)


def test_unavailable_substrate_changes_memory_then_raises():
    substrate = FlakySubstrate()
    store = TriageStore(substrate)
    substrate.available = False

    with pytest.raises(StoreUnavailable):
        run(store.mark_kept("a"))

    assert store.state("a") is TriageState.KEPT
    assert store.is_degraded
    assert substrate.get_string_set(KEPT_KEY) is None


def test_recovered_substrate_is_resynced():
    substrate = FlakySubstrate()
    store = TriageStore(substrate)

    async def scenario():
        substrate.available = False
        with pytest.raises(StoreUnavailable):
            await store.mark_for_deletion("a")
        with pytest.raises(StoreUnavailable):
            await store.save_position(3, 9)
        substrate.available = True
        await store.mark_kept("b")

    run(scenario())

    assert not store.is_degraded
    assert _durable_sets(substrate) == ({"b"}, {"a"})
    assert substrate.get_int(POSITION_INDEX_KEY) == 3
    assert substrate.get_int(POSITION_TOTAL_KEY) == 9


def test_unreadable_substrate_starts_empty():
    class Broken(MemoryKeyValueStore):
        def get_string_set(self, key):
            raise OSError("permission denied")

    store = TriageStore(Broken())

    assert store.is_degraded
    assert store.kept_ids() == set()
    assert store.load_position() == BrowsePosition()
