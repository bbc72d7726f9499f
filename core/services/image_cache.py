"""Deduplicating image cache keyed by (asset id, tier).

Each key holds at most one in-flight provider request. Callers asking for the
same key while it is in flight await the same task, so the provider is hit
once and every caller receives the same image. Completed entries (ready or
failed) live in a bounded LRU; eviction returns a key to absent.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from core.errors import ImageLoadFailed
from core.models import ImageTier
from core.services.interfaces import AssetProvider, DeliveryMode, ImageRequest, ImageVersion

DEFAULT_THUMBNAIL_SIZE = (200, 200)
DEFAULT_FULL_SIZE = (800, 1200)

_CacheKey = tuple[str, ImageTier]


class CacheStatus(Enum):
    ABSENT = "absent"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one cache slot."""

    status: CacheStatus
    image: Any = None
    error: ImageLoadFailed | None = None


_ABSENT = CacheEntry(CacheStatus.ABSENT)
_PENDING = CacheEntry(CacheStatus.PENDING)


class _LRUCache:
    def __init__(self, capacity: int) -> None:
        self._cap = max(1, int(capacity or 1))
        self._data: OrderedDict[_CacheKey, CacheEntry] = OrderedDict()

    def get(self, key: _CacheKey) -> CacheEntry | None:
        """Return the entry for key, moving it to the MRU position."""
        entry = self._data.get(key)
        if entry is None:
            return None
        self._data.move_to_end(key)
        return entry

    def put(self, key: _CacheKey, entry: CacheEntry) -> None:
        """Insert or update `key`, evicting LRU entries when over capacity."""
        self._data[key] = entry
        self._data.move_to_end(key)
        while len(self._data) > self._cap:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("Image cache evicted {} ({})", evicted[0], evicted[1].value)

    def pop(self, key: _CacheKey) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class ImageCache:
    """Image cache in front of the provider's `request_image`."""

    def __init__(
        self,
        provider: AssetProvider,
        capacity: int = 256,
        thumbnail_size: tuple[int, int] = DEFAULT_THUMBNAIL_SIZE,
        full_size: tuple[int, int] = DEFAULT_FULL_SIZE,
    ) -> None:
        self._provider = provider
        self._completed = _LRUCache(capacity)
        self._pending: dict[_CacheKey, asyncio.Task[CacheEntry]] = {}
        self._generations: dict[str, int] = {}
        self._sizes = {ImageTier.THUMBNAIL: thumbnail_size, ImageTier.FULL: full_size}

    # Public API
    def get(self, asset_id: str, tier: ImageTier) -> CacheEntry:
        """Return the current entry for (asset_id, tier) without fetching."""
        key = (asset_id, tier)
        if key in self._pending:
            return _PENDING
        return self._completed.get(key) or _ABSENT

    async def request(self, asset_id: str, tier: ImageTier) -> Any:
        """Return the image for (asset_id, tier), fetching it if needed.

        A failed entry is retried by an explicit request. Raises
        `ImageLoadFailed` when the provider cannot deliver.
        """
        key = (asset_id, tier)
        entry = self._completed.get(key)
        if entry is not None and entry.status is CacheStatus.READY:
            return entry.image
        task = self._pending.get(key)
        if task is None:
            # A retry replaces the failed entry
            self._completed.pop(key)
            task = self._start(key)
        # Shielded so an abandoned caller does not cancel the shared fetch
        entry = await asyncio.shield(task)
        if entry.status is CacheStatus.FAILED:
            raise entry.error or ImageLoadFailed(asset_id, tier.value, "unknown error")
        return entry.image

    def prefetch(self, asset_ids: Iterable[str], tier: ImageTier) -> None:
        """Start background fetches for ids that are neither cached nor in flight.

        Must be called from a running event loop. Failed entries are left
        alone; only an explicit `request` retries them.
        """
        for asset_id in asset_ids:
            key = (asset_id, tier)
            if key in self._pending or self._completed.get(key) is not None:
                continue
            self._start(key)

    def discard(self, asset_ids: Iterable[str]) -> None:
        """Forget every tier of `asset_ids`; late results for them are dropped."""
        for asset_id in asset_ids:
            self._generations[asset_id] = self._generations.get(asset_id, 0) + 1
            for tier in ImageTier:
                self._completed.pop((asset_id, tier))
                self._pending.pop((asset_id, tier), None)

    def clear(self) -> None:
        """Drop all completed entries; in-flight fetches keep running."""
        self._completed.clear()

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    # Internal helpers
    def _start(self, key: _CacheKey) -> asyncio.Task[CacheEntry]:
        generation = self._generations.get(key[0], 0)
        task = asyncio.get_running_loop().create_task(self._fetch(key, generation))
        self._pending[key] = task
        return task

    async def _fetch(self, key: _CacheKey, generation: int) -> CacheEntry:
        asset_id, tier = key
        request = ImageRequest(
            asset_id=asset_id,
            target_size=self._sizes[tier],
            tier=tier,
            delivery=(
                DeliveryMode.FAST_NO_NETWORK
                if tier is ImageTier.THUMBNAIL
                else DeliveryMode.HIGH_QUALITY_NETWORK
            ),
            version=ImageVersion.CURRENT,
        )
        try:
            image = await self._provider.request_image(request)
            if image is None:
                raise ImageLoadFailed(asset_id, tier.value, "provider returned no image")
            entry = CacheEntry(CacheStatus.READY, image=image)
        except ImageLoadFailed as ex:
            logger.warning("Image load failed for {} ({}): {}", asset_id, tier.value, ex.reason)
            entry = CacheEntry(CacheStatus.FAILED, error=ex)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.warning("Image load failed for {} ({}): {}", asset_id, tier.value, ex)
            entry = CacheEntry(
                CacheStatus.FAILED, error=ImageLoadFailed(asset_id, tier.value, str(ex))
            )

        if self._generations.get(asset_id, 0) == generation:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]
            self._completed.put(key, entry)
        else:
            logger.debug("Dropping late image for discarded {}", asset_id)
        return entry
