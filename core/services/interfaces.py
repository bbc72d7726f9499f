"""Core service interfaces and shared data structures.

This module defines the narrow protocols the triage core consumes (the asset
provider and the durable key/value substrate) and the simple dataclasses that
cross the boundary between core, infrastructure, and UI layers.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from core.errors import DeletionFailed
from core.models import GeoLocation, ImageTier


class AuthorizationStatus(Enum):
    """Library access state reported by the asset provider."""

    NOT_DETERMINED = "not_determined"
    AUTHORIZED = "authorized"
    LIMITED = "limited"
    DENIED = "denied"
    RESTRICTED = "restricted"

    @property
    def is_granted(self) -> bool:
        """True if photos may be enumerated."""
        return self in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.LIMITED)


class DeliveryMode(Enum):
    """Provider delivery policy for an image request."""

    FAST_NO_NETWORK = "fast"
    HIGH_QUALITY_NETWORK = "high_quality"


class ImageVersion(Enum):
    """Which representation of an asset the provider should decode."""

    CURRENT = "current"
    ORIGINAL = "original"


@dataclass(frozen=True)
class AssetRecord:
    """Metadata row returned by `AssetProvider.fetch_all`."""

    id: str
    creation_time: datetime | None
    width: int = 0
    height: int = 0
    is_live: bool = False
    location: GeoLocation | None = None


@dataclass(frozen=True)
class ImageRequest:
    """Parameters of a single provider image fetch.

    Attributes:
        asset_id: Provider identifier of the asset.
        target_size: Bounding box (width, height) in pixels.
        tier: Cache tier the request fills.
        delivery: Latency/quality policy.
        version: Representation to decode; the current still for live photos.
    """

    asset_id: str
    target_size: tuple[int, int]
    tier: ImageTier
    delivery: DeliveryMode
    version: ImageVersion = ImageVersion.CURRENT


@dataclass
class BatchDeleteResult:
    """Outcome of an atomic provider batch delete."""

    success: bool
    reason: str = ""


@dataclass
class DeletionResult:
    """Outcome of a commit.

    Attributes:
        deleted_ids: Identifiers removed from the library.
        error: Set when the provider rejected the batch; nothing was changed.
        log_path: Optional path to the audit CSV written for this commit.
    """

    deleted_ids: list[str] = field(default_factory=list)
    error: DeletionFailed | None = None
    log_path: str | None = None

    @property
    def success(self) -> bool:
        """True if the commit removed every requested photo (or had none)."""
        return self.error is None


class AssetProvider(Protocol):
    """External media library consumed by the catalog, cache, and coordinator."""

    async def authorization_status(self) -> AuthorizationStatus:
        """Return the current library access state."""
        ...

    async def request_authorization(self) -> AuthorizationStatus:
        """Ask for access and return the resulting state."""
        ...

    async def fetch_all(self) -> list[AssetRecord]:
        """Return metadata for every photo, newest first."""
        ...

    async def request_image(self, request: ImageRequest) -> Any:
        """Return the decoded image, raising on failure."""
        ...

    async def delete_batch(self, ids: Iterable[str]) -> BatchDeleteResult:
        """Delete every asset in `ids` or none of them."""
        ...


class KeyValueStore(Protocol):
    """Flat durable substrate with single-key atomic writes.

    Implementations raise `OSError` (or a subclass) when the substrate is
    unavailable.
    """

    def get_string_set(self, key: str) -> set[str] | None:
        """Return the set stored under `key`, or None."""
        ...

    def set_string_set(self, key: str, values: Iterable[str]) -> None:
        """Replace the set stored under `key`."""
        ...

    def get_int(self, key: str) -> int | None:
        """Return the integer stored under `key`, or None."""
        ...

    def set_int(self, key: str, value: int) -> None:
        """Store `value` under `key`."""
        ...

    def remove(self, key: str) -> None:
        """Delete `key` if present."""
        ...
