"""Persistent triage state backed by a flat key/value substrate.

The store keeps one tagged `TriageState` per identifier in memory and mirrors
it to the substrate as two disjoint identifier sets (kept and marked) plus the
last browsing position. Memory is always updated first and in a single step,
so readers never observe an identifier in both sets or in neither while it is
being flipped. Durable writes happen afterwards, off the event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from loguru import logger

from core.errors import StoreUnavailable
from core.models import BrowsePosition, TriageState, TriageStats
from core.services.interfaces import KeyValueStore

KEPT_KEY = "triage.kept"
MARKED_KEY = "triage.marked"
POSITION_INDEX_KEY = "triage.position.index"
POSITION_TOTAL_KEY = "triage.position.total"

_SET_KEYS: dict[TriageState, str] = {
    TriageState.KEPT: KEPT_KEY,
    TriageState.MARKED_FOR_DELETION: MARKED_KEY,
}


class TriageStore:
    """Durable kept/marked sets and browsing position."""

    def __init__(self, substrate: KeyValueStore) -> None:
        self._substrate = substrate
        self._states: dict[str, TriageState] = {}
        self._deleted: set[str] = set()
        self._position = BrowsePosition()
        self._lock = asyncio.Lock()
        self._degraded = False
        # Set after a failed write; the next write rewrites every key
        self._needs_resync = False
        self._load()

    # Loading
    def _load(self) -> None:
        try:
            kept = self._substrate.get_string_set(KEPT_KEY) or set()
            marked = self._substrate.get_string_set(MARKED_KEY) or set()
            index = self._substrate.get_int(POSITION_INDEX_KEY) or 0
            total = self._substrate.get_int(POSITION_TOTAL_KEY) or 0
        except (OSError, ValueError) as ex:
            logger.warning("Triage store unreadable, starting in memory only: {}", ex)
            self._degraded = True
            return

        overlap = kept & marked
        if overlap:
            logger.warning("{} id(s) found both kept and marked; treating as kept", len(overlap))
        for asset_id in marked - overlap:
            self._states[asset_id] = TriageState.MARKED_FOR_DELETION
        for asset_id in kept:
            self._states[asset_id] = TriageState.KEPT
        self._position = BrowsePosition(index=max(0, int(index)), total=max(0, int(total)))
        logger.debug(
            "Triage store loaded: {} kept, {} marked, position {}/{}",
            len(kept),
            len(marked - overlap),
            self._position.index,
            self._position.total,
        )

    # Queries
    def state(self, asset_id: str) -> TriageState:
        """Return the triage state of `asset_id`."""
        if asset_id in self._deleted:
            return TriageState.DELETED
        return self._states.get(asset_id, TriageState.UNPROCESSED)

    def is_kept(self, asset_id: str) -> bool:
        return self.state(asset_id) is TriageState.KEPT

    def is_marked_for_deletion(self, asset_id: str) -> bool:
        return self.state(asset_id) is TriageState.MARKED_FOR_DELETION

    def kept_ids(self) -> set[str]:
        return self._ids_in(TriageState.KEPT)

    def marked_ids(self) -> set[str]:
        return self._ids_in(TriageState.MARKED_FOR_DELETION)

    def stats(self) -> TriageStats:
        """Return kept and marked counts."""
        return TriageStats(
            kept_count=len(self.kept_ids()),
            marked_count=len(self.marked_ids()),
        )

    def load_position(self) -> BrowsePosition:
        """Return the saved position clamped to the saved total."""
        total = self._position.total
        return BrowsePosition(index=self._position.clamped(total), total=total)

    @property
    def is_degraded(self) -> bool:
        """True while the substrate rejects writes (in-memory only)."""
        return self._degraded

    # Mutations
    async def mark_kept(self, asset_id: str) -> None:
        """Mark `asset_id` as kept, clearing any deletion mark."""
        await self._assign([asset_id], TriageState.KEPT)

    async def mark_for_deletion(self, asset_id: str) -> None:
        """Mark `asset_id` for deletion, clearing any kept flag."""
        await self._assign([asset_id], TriageState.MARKED_FOR_DELETION)

    async def unmark(self, asset_id: str) -> None:
        """Return `asset_id` to unprocessed."""
        await self._assign([asset_id], TriageState.UNPROCESSED)

    async def keep_all(self, asset_ids: Iterable[str]) -> None:
        """Mark every id in `asset_ids` as kept with one write per set."""
        await self._assign(list(asset_ids), TriageState.KEPT)

    async def clear_marked(self) -> None:
        """Drop every deletion mark; kept ids and position are untouched."""
        async with self._lock:
            for asset_id in self.marked_ids():
                del self._states[asset_id]
            await self._write([MARKED_KEY])

    async def forget(self, asset_ids: Iterable[str]) -> None:
        """Permanently remove deleted ids from both sets."""
        ids = set(asset_ids)
        if not ids:
            return
        async with self._lock:
            for asset_id in ids:
                self._states.pop(asset_id, None)
            self._deleted |= ids
            await self._write([MARKED_KEY, KEPT_KEY])

    async def clear_all(self) -> None:
        """Empty both sets and the saved position."""
        async with self._lock:
            self._states.clear()
            self._position = BrowsePosition()
            await self._run_write(self._remove_all)
        logger.info("Triage history cleared")

    async def save_position(self, index: int, total: int) -> None:
        """Persist the cursor position and the collection size it refers to."""
        async with self._lock:
            self._position = BrowsePosition(index=max(0, int(index)), total=max(0, int(total)))
            await self._write([POSITION_INDEX_KEY, POSITION_TOTAL_KEY])

    # Internal helpers
    def _ids_in(self, state: TriageState) -> set[str]:
        return {k for k, v in self._states.items() if v is state}

    async def _assign(self, asset_ids: list[str], state: TriageState) -> None:
        async with self._lock:
            touched: list[str] = []
            for asset_id in asset_ids:
                # An id restored to the library after a commit starts over
                self._deleted.discard(asset_id)
                previous = self._states.get(asset_id, TriageState.UNPROCESSED)
                if previous is state:
                    continue
                if state is TriageState.UNPROCESSED:
                    del self._states[asset_id]
                else:
                    self._states[asset_id] = state
                # Old set is rewritten before the new one
                for s in (previous, state):
                    key = _SET_KEYS.get(s)
                    if key is not None and key not in touched:
                        touched.append(key)
                logger.debug("Triage {}: {} -> {}", asset_id, previous.value, state.value)
            if touched or self._needs_resync:
                await self._write(touched)

    async def _write(self, keys: list[str]) -> None:
        if self._needs_resync:
            keys = [MARKED_KEY, KEPT_KEY, POSITION_INDEX_KEY, POSITION_TOTAL_KEY]
        snapshot = self._snapshot(keys)
        await self._run_write(lambda: self._write_snapshot(snapshot))

    def _snapshot(self, keys: list[str]) -> list[tuple[str, set[str] | int]]:
        values: list[tuple[str, set[str] | int]] = []
        for key in keys:
            if key == KEPT_KEY:
                values.append((key, self.kept_ids()))
            elif key == MARKED_KEY:
                values.append((key, self.marked_ids()))
            elif key == POSITION_INDEX_KEY:
                values.append((key, self._position.index))
            elif key == POSITION_TOTAL_KEY:
                values.append((key, self._position.total))
        return values

    def _write_snapshot(self, snapshot: list[tuple[str, set[str] | int]]) -> None:
        for key, value in snapshot:
            if isinstance(value, set):
                self._substrate.set_string_set(key, sorted(value))
            else:
                self._substrate.set_int(key, value)

    def _remove_all(self) -> None:
        for key in (KEPT_KEY, MARKED_KEY, POSITION_INDEX_KEY, POSITION_TOTAL_KEY):
            self._substrate.remove(key)

    async def _run_write(self, fn) -> None:
        try:
            await asyncio.to_thread(fn)
        except OSError as ex:
            if not self._degraded:
                logger.warning("Triage store write failed, continuing in memory: {}", ex)
            self._degraded = True
            self._needs_resync = True
            raise StoreUnavailable(str(ex)) from ex
        if self._degraded:
            logger.info("Triage store writable again")
        self._degraded = False
        self._needs_resync = False
