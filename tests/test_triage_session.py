from __future__ import annotations

import pytest

from conftest import FlakySubstrate, Triage, make_records, run
from core.models import BrowsePosition, TriageState
from core.services.triage_session import STORE_WARNING

KEEP = TriageState.KEPT
MARK = TriageState.MARKED_FOR_DELETION


def test_decide_advances_and_records(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(KEEP)
        await triage.session.decide(MARK)
        return await triage.session.decide(KEEP)

    current = run(scenario())

    assert current.id == "D"
    assert triage.session.index == 3
    assert triage.store.kept_ids() == {"A", "C"}
    assert triage.store.marked_ids() == {"B"}
    assert triage.catalog.item_at(1).state is MARK
    assert triage.store.load_position() == BrowsePosition(index=3, total=5)


def test_decide_on_last_photo_wraps(triage):
    async def scenario():
        await triage.session.start()
        for _ in range(4):
            await triage.session.move_next()
        return await triage.session.decide(KEEP)

    current = run(scenario())

    assert current.id == "A"
    assert triage.store.is_kept("E")


def test_move_previous_from_first_wraps_to_last(triage):
    async def scenario():
        await triage.session.start()
        return await triage.session.move_previous()

    assert run(scenario()).id == "E"
    assert triage.store.load_position().index == 4


def test_undo_clears_decision_without_moving(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(MARK)
        await triage.session.move_previous()
        return await triage.session.undo()

    item = run(scenario())

    assert item.id == "A"
    assert item.state is TriageState.UNPROCESSED
    assert triage.session.index == 0
    assert triage.store.marked_ids() == set()


def test_undo_on_unprocessed_photo_is_noop(triage):
    async def scenario():
        await triage.session.start()
        return await triage.session.undo()

    assert run(scenario()).id == "A"
    assert triage.substrate.get_string_set("triage.kept") is None


def test_decide_rejects_non_decisions(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(TriageState.UNPROCESSED)

    with pytest.raises(ValueError):
        run(scenario())


def test_first_unprocessed_scans_forward_and_wraps():
    t = Triage(["A", "B", "C", "D"])

    async def scenario():
        await t.store.mark_kept("A")
        await t.store.mark_kept("C")
        await t.store.mark_for_deletion("D")
        await t.store.save_position(2, 4)
        await t.session.start()

    run(scenario())

    # C and D are processed, the scan wraps to A (kept) then B
    assert t.session.index == 1
    assert t.session.current().id == "B"


def test_first_unprocessed_leaves_cursor_when_all_processed():
    t = Triage(["A", "B", "C"])

    async def scenario():
        for asset_id in ("A", "B", "C"):
            await t.store.mark_kept(asset_id)
        await t.store.save_position(2, 3)
        await t.session.start()
        return await t.session.first_unprocessed()

    assert run(scenario()) == 2


def test_start_clamps_saved_position_to_smaller_library():
    t = Triage(["A", "B", "C"])

    async def scenario():
        await t.store.save_position(8, 10)
        return await t.session.start()

    assert run(scenario()).id == "C"
    assert t.store.load_position() == BrowsePosition(index=2, total=3)


def test_empty_library():
    t = Triage([])

    async def scenario():
        assert await t.session.start() is None
        assert await t.session.decide(KEEP) is None
        assert await t.session.move_next() is None

    run(scenario())

    assert t.session.current() is None
    assert t.session.next_item() is None
    assert t.session.progress() == (0, 0)


def test_next_item_and_progress(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.move_previous()

    run(scenario())

    assert triage.session.current().id == "E"
    assert triage.session.next_item().id == "A"
    assert triage.session.progress() == (5, 5)


def test_keep_selected_moves_only_marked(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(MARK)
        await triage.session.decide(MARK)
        return await triage.session.keep_selected(["A", "C"])

    assert run(scenario()) == 1
    assert triage.store.kept_ids() == {"A"}
    assert triage.store.marked_ids() == {"B"}
    assert triage.catalog.item_at(0).state is KEEP


def test_clear_marks_and_history(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(KEEP)
        await triage.session.decide(MARK)
        await triage.session.clear_marks()
        assert triage.store.kept_ids() == {"A"}
        assert triage.store.marked_ids() == set()
        assert triage.catalog.item_at(1).state is TriageState.UNPROCESSED
        await triage.session.clear_history()

    run(scenario())

    assert triage.session.stats().kept_count == 0
    assert all(it.is_unprocessed for it in triage.catalog.items)


def test_store_outage_warns_once_and_triage_continues():
    substrate = FlakySubstrate()
    t = Triage(["A", "B", "C", "D"], substrate=substrate)

    async def scenario():
        await t.session.start()
        substrate.available = False
        await t.session.decide(KEEP)
        await t.session.decide(MARK)
        await t.session.move_next()

    run(scenario())

    assert t.warnings == [STORE_WARNING]
    assert t.store.is_kept("A")
    assert t.store.is_marked_for_deletion("B")
    assert t.session.index == 3


def test_new_outage_warns_again_after_recovery():
    substrate = FlakySubstrate()
    t = Triage(["A", "B", "C"], substrate=substrate)

    async def scenario():
        await t.session.start()
        substrate.available = False
        await t.session.decide(KEEP)
        substrate.available = True
        await t.session.decide(KEEP)
        substrate.available = False
        await t.session.decide(KEEP)

    run(scenario())

    assert t.warnings == [STORE_WARNING, STORE_WARNING]


def test_refresh_keeps_current_photo_when_library_grows(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.move_next()
        await triage.session.move_next()
        triage.provider.records = make_records(["NEW", "A", "B", "C", "D", "E"])
        return await triage.session.refresh()

    current = run(scenario())

    assert current.id == "C"
    assert triage.session.index == 3
    assert triage.store.load_position() == BrowsePosition(index=3, total=6)


def test_refresh_resumes_when_current_photo_vanished(triage):
    async def scenario():
        await triage.session.start()
        await triage.session.decide(KEEP)
        triage.provider.records = make_records(["A", "C", "D", "E"])
        return await triage.session.refresh()

    current = run(scenario())

    # Saved index 1 now points at C, the first unprocessed photo
    assert current.id == "C"
    assert triage.session.index == 1
