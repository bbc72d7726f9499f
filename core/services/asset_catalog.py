"""Ordered, read-only view of the photo library annotated with triage state."""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from core.errors import PermissionDenied
from core.models import PhotoItem, TriageState
from core.services.interfaces import AssetProvider, AssetRecord, AuthorizationStatus
from core.services.triage_store import TriageStore


class AssetCatalog:
    """Holds the current photo sequence, newest first.

    Only metadata is fetched here; image bytes are the image cache's job.
    """

    def __init__(self, provider: AssetProvider, store: TriageStore) -> None:
        self._provider = provider
        self._store = store
        self._items: list[PhotoItem] = []
        self._positions: dict[str, int] = {}

    async def load(self) -> list[PhotoItem]:
        """Fetch the library and apply the store's kept/marked sets."""
        await self._ensure_authorized()
        records = await self._provider.fetch_all()
        items = [self._to_item(r) for r in records]
        # Provider order is authoritative; sort defensively when it is not
        if any(
            _sort_key(a) < _sort_key(b) for a, b in zip(items, items[1:])
        ):
            items.sort(key=_sort_key, reverse=True)
        self._replace(items)
        logger.info("Catalog loaded: {} photos", len(items))
        return list(self._items)

    async def refresh(self) -> list[PhotoItem]:
        """Re-fetch after the library may have changed underneath us."""
        before = len(self._items)
        items = await self.load()
        if len(items) != before:
            logger.info("Catalog changed on refresh: {} -> {} photos", before, len(items))
        return items

    # Queries
    @property
    def items(self) -> list[PhotoItem]:
        return list(self._items)

    @property
    def count(self) -> int:
        return len(self._items)

    def item_at(self, index: int) -> PhotoItem | None:
        """Return the item at `index`, or None when out of range."""
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def index_of(self, asset_id: str) -> int | None:
        return self._positions.get(asset_id)

    def marked_items(self) -> list[PhotoItem]:
        """Items currently marked for deletion, in catalog order."""
        return [it for it in self._items if it.state is TriageState.MARKED_FOR_DELETION]

    # Mutations driven by the session and the deletion coordinator
    def apply_state(self, asset_id: str, state: TriageState) -> None:
        index = self._positions.get(asset_id)
        if index is not None:
            self._items[index].state = state

    def remove(self, asset_ids: Iterable[str]) -> int:
        """Drop `asset_ids` from the sequence and return how many were removed."""
        removed = set(asset_ids)
        if not removed:
            return 0
        kept_items = [it for it in self._items if it.id not in removed]
        count = len(self._items) - len(kept_items)
        self._replace(kept_items)
        return count

    # Internal helpers
    async def _ensure_authorized(self) -> None:
        status = await self._provider.authorization_status()
        if status is AuthorizationStatus.NOT_DETERMINED:
            status = await self._provider.request_authorization()
        if not status.is_granted:
            logger.warning("Photo library access not granted: {}", status.value)
            raise PermissionDenied(status)

    def _to_item(self, record: AssetRecord) -> PhotoItem:
        state = self._store.state(record.id)
        if state is TriageState.DELETED:
            state = TriageState.UNPROCESSED
        return PhotoItem(
            id=record.id,
            creation_time=record.creation_time,
            width=record.width,
            height=record.height,
            is_live=record.is_live,
            location=record.location,
            state=state,
        )

    def _replace(self, items: list[PhotoItem]) -> None:
        self._items = items
        self._positions = {it.id: i for i, it in enumerate(items)}


def _sort_key(item: PhotoItem) -> float:
    return item.creation_time.timestamp() if item.creation_time else float("-inf")
