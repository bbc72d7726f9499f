"""Cursor-driven triage state machine.

The session walks the catalog one photo at a time. Decisions go through the
triage store, cursor movement is cyclic (advancing past the last photo wraps
to the first, so repeated passes continue until everything is triaged), and
every cursor move is persisted immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable

from loguru import logger

from core.errors import StoreUnavailable
from core.models import PhotoItem, TriageState, TriageStats
from core.services.asset_catalog import AssetCatalog
from core.services.triage_store import TriageStore

STORE_WARNING = "Changes cannot be saved right now; triage continues for this session only."


class TriageSession:
    """Owns the cursor over an `AssetCatalog`.

    Args:
        catalog: Catalog providing the photo sequence.
        store: Triage store receiving every decision and cursor move.
        on_warning: Called with a message once per persistence outage.
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        store: TriageStore,
        on_warning: Callable[[str], None] | None = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self.on_warning = on_warning
        self._index = 0
        self._lock = asyncio.Lock()
        self._warned = False

    # Lifecycle
    async def start(self) -> PhotoItem | None:
        """Load the catalog and resume at the first unprocessed photo.

        Raises `PermissionDenied` when the library is not accessible.
        """
        await self._catalog.load()
        return await self._resume()

    async def refresh(self) -> PhotoItem | None:
        """Reload after the library may have changed and resume browsing."""
        current = self.current()
        await self._catalog.refresh()
        if current is not None:
            index = self._catalog.index_of(current.id)
            if index is not None:
                async with self._lock:
                    self._index = index
                    await self._persist_position()
                return await self._first_unprocessed_and_current()
        return await self._resume()

    # Queries
    @property
    def catalog(self) -> AssetCatalog:
        return self._catalog

    @property
    def index(self) -> int:
        return self._index

    def current(self) -> PhotoItem | None:
        """Photo under the cursor, or None for an empty catalog."""
        return self._catalog.item_at(self._index)

    def next_item(self) -> PhotoItem | None:
        """Photo shown after the current one, wrapping at the end."""
        count = self._catalog.count
        if count < 2:
            return None
        return self._catalog.item_at((self._index + 1) % count)

    def progress(self) -> tuple[int, int]:
        """Return (1-based position, total); (0, 0) when empty."""
        count = self._catalog.count
        return (self._index + 1, count) if count else (0, 0)

    def stats(self) -> TriageStats:
        return self._store.stats()

    # Decisions
    async def decide(self, outcome: TriageState) -> PhotoItem | None:
        """Apply `outcome` to the current photo and advance the cursor."""
        if outcome not in (TriageState.KEPT, TriageState.MARKED_FOR_DELETION):
            raise ValueError(f"Not a triage decision: {outcome}")
        async with self._lock:
            item = self.current()
            if item is None:
                return None
            await self._set_state(item, outcome)
            await self._step(1)
            return self.current()

    async def undo(self) -> PhotoItem | None:
        """Clear the current photo's decision; the cursor stays put."""
        async with self._lock:
            item = self.current()
            if item is None or item.is_unprocessed:
                return item
            await self._set_state(item, TriageState.UNPROCESSED)
            return item

    async def keep_selected(self, asset_ids: Iterable[str]) -> int:
        """Move the given marked photos to kept; returns how many changed."""
        async with self._lock:
            ids = [
                i
                for i in asset_ids
                if self._store.state(i) is TriageState.MARKED_FOR_DELETION
            ]
            if not ids:
                return 0
            for asset_id in ids:
                self._catalog.apply_state(asset_id, TriageState.KEPT)
            await self._guard(self._store.keep_all(ids))
            return len(ids)

    async def clear_marks(self) -> None:
        """Drop every deletion mark while keeping kept photos."""
        async with self._lock:
            for item in self._catalog.marked_items():
                self._catalog.apply_state(item.id, TriageState.UNPROCESSED)
            await self._guard(self._store.clear_marked())

    async def clear_history(self) -> None:
        """Forget every decision and the saved position."""
        async with self._lock:
            for item in self._catalog.items:
                self._catalog.apply_state(item.id, TriageState.UNPROCESSED)
            await self._guard(self._store.clear_all())

    # Navigation
    async def move_next(self) -> PhotoItem | None:
        async with self._lock:
            await self._step(1)
            return self.current()

    async def move_previous(self) -> PhotoItem | None:
        async with self._lock:
            await self._step(-1)
            return self.current()

    async def first_unprocessed(self) -> int:
        """Move to the first unprocessed photo at or after the cursor, wrapping.

        The cursor is left unchanged when every photo is processed. Returns the
        resulting index.
        """
        async with self._lock:
            await self._scan_unprocessed()
            return self._index

    async def reconcile_removed(self, asset_ids: Iterable[str]) -> PhotoItem | None:
        """Drop deleted photos and move on to the next photo to triage.

        The cursor stays on the current photo when it survives; otherwise the
        old index is clamped to the shorter sequence. The ids are forgotten by
        the store, and the unprocessed scan runs last.
        """
        ids = list(asset_ids)
        async with self._lock:
            current = self.current()
            self._catalog.remove(ids)
            await self._guard(self._store.forget(ids))
            index = self._catalog.index_of(current.id) if current is not None else None
            count = self._catalog.count
            if index is None:
                index = min(self._index, count - 1) if count else 0
            self._index = index
            await self._persist_position()
            await self._scan_unprocessed()
            return self.current()

    # Internal helpers
    async def _resume(self) -> PhotoItem | None:
        saved = self._store.load_position()
        async with self._lock:
            self._index = saved.clamped(self._catalog.count)
            if saved.total and saved.total != self._catalog.count:
                logger.info(
                    "Library size changed since last session ({} -> {})",
                    saved.total,
                    self._catalog.count,
                )
            await self._persist_position()
        return await self._first_unprocessed_and_current()

    async def _first_unprocessed_and_current(self) -> PhotoItem | None:
        await self.first_unprocessed()
        return self.current()

    async def _scan_unprocessed(self) -> None:
        count = self._catalog.count
        for offset in range(count):
            index = (self._index + offset) % count
            item = self._catalog.item_at(index)
            if item is not None and item.is_unprocessed:
                if index != self._index:
                    self._index = index
                    await self._persist_position()
                return

    async def _set_state(self, item: PhotoItem, state: TriageState) -> None:
        item.state = state
        if state is TriageState.KEPT:
            await self._guard(self._store.mark_kept(item.id))
        elif state is TriageState.MARKED_FOR_DELETION:
            await self._guard(self._store.mark_for_deletion(item.id))
        else:
            await self._guard(self._store.unmark(item.id))

    async def _step(self, delta: int) -> None:
        count = self._catalog.count
        if count == 0:
            self._index = 0
        else:
            self._index = (self._index + delta) % count
        await self._persist_position()

    async def _persist_position(self) -> None:
        await self._guard(self._store.save_position(self._index, self._catalog.count))

    async def _guard(self, write) -> None:
        try:
            await write
        except StoreUnavailable as ex:
            if not self._warned:
                self._warned = True
                logger.warning("Triage state kept in memory only: {}", ex)
                if self.on_warning is not None:
                    self.on_warning(STORE_WARNING)
            return
        self._warned = False
