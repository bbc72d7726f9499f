"""Core domain models for photo items and triage state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TriageState(Enum):
    """Triage outcome of a single photo."""

    UNPROCESSED = "unprocessed"
    KEPT = "kept"
    MARKED_FOR_DELETION = "marked"
    # Only applied in memory after a successful commit
    DELETED = "deleted"


class ImageTier(Enum):
    """Resolution level of a cached image fetch."""

    THUMBNAIL = "thumbnail"
    FULL = "full"


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float


@dataclass
class PhotoItem:
    """A single photo of the collection as seen by the catalog.

    `state` is derived from the triage store when the catalog loads and is
    kept in step with it by the session; it is never persisted on the item.
    """

    id: str
    creation_time: datetime | None
    width: int = 0
    height: int = 0
    is_live: bool = False
    location: GeoLocation | None = None
    state: TriageState = TriageState.UNPROCESSED

    @property
    def is_kept(self) -> bool:
        """True if the photo was kept."""
        return self.state is TriageState.KEPT

    @property
    def is_marked_for_deletion(self) -> bool:
        """True if the photo waits for the next commit."""
        return self.state is TriageState.MARKED_FOR_DELETION

    @property
    def is_unprocessed(self) -> bool:
        """True if no decision was made for the photo yet."""
        return self.state is TriageState.UNPROCESSED


@dataclass(frozen=True)
class BrowsePosition:
    """Saved cursor position; `total` is the collection size at save time."""

    index: int = 0
    total: int = 0

    def clamped(self, count: int) -> int:
        """Return `index` clamped to a collection of `count` items."""
        if count <= 0:
            return 0
        return max(0, min(self.index, count - 1))


@dataclass(frozen=True)
class TriageStats:
    kept_count: int
    marked_count: int
