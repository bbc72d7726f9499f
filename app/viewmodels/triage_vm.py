"""ViewModel bridging the Qt UI thread and the asyncio triage core.

The core runs on a dedicated event loop thread. Every UI action is submitted
to that loop, which also serializes cursor mutations; results come back to the
UI thread through Qt signals (queued across threads).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import Future
import threading
from typing import Any

from PySide6.QtCore import QObject, Signal
from loguru import logger

from core.errors import ImageLoadFailed, PermissionDenied
from core.models import ImageTier, PhotoItem, TriageState
from core.services.deletion_coordinator import DeletionCoordinator
from core.services.image_cache import ImageCache
from core.services.triage_session import TriageSession


class AsyncRunner:
    """Runs an asyncio loop on a daemon thread."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="triage-loop", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def submit(self, coro: Awaitable[Any]) -> Future:
        """Schedule `coro` on the loop and return a concurrent future."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)  # type: ignore[arg-type]
        future.add_done_callback(_log_failure)
        return future

    def stop(self, timeout: float = 2.0) -> None:
        if not self._loop.is_running():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)


def _log_failure(future: Future) -> None:
    if future.cancelled():
        return
    ex = future.exception()
    if ex is not None:
        logger.opt(exception=ex).error("Background task failed: {}", ex)


class TriageVM(QObject):
    """Main application view-model.

    Signals:
        photoChanged(current, next): PhotoItem or None for each.
        imageReady(asset_id, tier, image): decoded Pillow image.
        imageFailed(asset_id, tier, reason)
        statsChanged(position, total, kept, marked)
        warning(message): non-fatal problems such as an unwritable store.
        permissionDenied(message)
        commitFinished(result): a `DeletionResult`.
        busyChanged(busy)
    """

    photoChanged = Signal(object, object)
    imageReady = Signal(str, str, object)
    imageFailed = Signal(str, str, str)
    statsChanged = Signal(int, int, int, int)
    warning = Signal(str)
    permissionDenied = Signal(str)
    commitFinished = Signal(object)
    busyChanged = Signal(bool)

    def __init__(
        self,
        session: TriageSession,
        coordinator: DeletionCoordinator,
        cache: ImageCache,
        prefetch: int = 3,
        runner: AsyncRunner | None = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._coordinator = coordinator
        self._cache = cache
        self._prefetch = max(0, int(prefetch))
        self._runner = runner or AsyncRunner()
        self._session.on_warning = self.warning.emit
        self._tasks: set[asyncio.Task] = set()

    # Loading
    def start(self) -> Future:
        return self._submit(self._session.start, busy=True)

    def refresh(self) -> Future:
        return self._submit(self._session.refresh, busy=True)

    # Decisions and navigation
    def keep(self) -> Future:
        return self._submit(lambda: self._session.decide(TriageState.KEPT))

    def mark_for_deletion(self) -> Future:
        return self._submit(lambda: self._session.decide(TriageState.MARKED_FOR_DELETION))

    def undo(self) -> Future:
        return self._submit(self._session.undo)

    def next(self) -> Future:
        return self._submit(self._session.move_next)

    def previous(self) -> Future:
        return self._submit(self._session.move_previous)

    def keep_selected(self, asset_ids: Iterable[str]) -> Future:
        ids = list(asset_ids)
        return self._submit(lambda: self._session.keep_selected(ids))

    def clear_marks(self) -> Future:
        return self._submit(self._session.clear_marks)

    def clear_history(self) -> Future:
        return self._submit(self._session.clear_history)

    def marked_items(self) -> list[PhotoItem]:
        """Marked photos in catalog order (read from the UI thread)."""
        return self._session.catalog.marked_items()

    def commit(self, selected: Iterable[str] | None = None) -> Future:
        ids = list(selected) if selected is not None else None

        async def _commit() -> None:
            result = await self._coordinator.commit(ids)
            self.commitFinished.emit(result)

        return self._submit(_commit, busy=True)

    def request_preview(self, asset_id: str) -> Future:
        """Load the thumbnail shown for the upcoming photo."""
        return self._runner.submit(self._load_image(asset_id, ImageTier.THUMBNAIL))

    def shutdown(self) -> None:
        self._runner.stop()

    # Internal helpers
    def _submit(self, action: Callable[[], Awaitable[Any]], busy: bool = False) -> Future:
        async def _run() -> None:
            if busy:
                self.busyChanged.emit(True)
            try:
                await action()
            except PermissionDenied as ex:
                self.permissionDenied.emit(str(ex))
                return
            finally:
                if busy:
                    self.busyChanged.emit(False)
            self._publish()

        return self._runner.submit(_run())

    def _publish(self) -> None:
        current = self._session.current()
        upcoming = self._session.next_item()
        position, total = self._session.progress()
        stats = self._session.stats()
        self.photoChanged.emit(current, upcoming)
        self.statsChanged.emit(position, total, stats.kept_count, stats.marked_count)
        if current is not None:
            self._spawn(self._load_image(current.id, ImageTier.THUMBNAIL))
            self._spawn(self._load_image(current.id, ImageTier.FULL))
        self._schedule_prefetch()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_prefetch(self) -> None:
        items = self._session.catalog.items
        if not items or not self._prefetch:
            return
        start = self._session.index
        ids = [items[(start + i) % len(items)].id for i in range(1, self._prefetch + 1)]
        self._cache.prefetch(dict.fromkeys(ids), ImageTier.THUMBNAIL)
        self._cache.prefetch(ids[:1], ImageTier.FULL)

    async def _load_image(self, asset_id: str, tier: ImageTier) -> None:
        try:
            image = await self._cache.request(asset_id, tier)
        except ImageLoadFailed as ex:
            self.imageFailed.emit(asset_id, tier.value, ex.reason)
            return
        self.imageReady.emit(asset_id, tier.value, image)
        logger.trace("Image ready for {} ({})", asset_id, tier.value)
