"""Exception hierarchy for the triage core."""

from __future__ import annotations

from collections.abc import Iterable


class TriageError(Exception):
    """Base class for all errors raised by the triage core."""


class PermissionDenied(TriageError):
    """Raised when the asset provider did not grant library access."""

    def __init__(self, status: object, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or f"Photo library access not granted ({status})")


class StoreUnavailable(TriageError):
    """Raised when the durable substrate rejected a write.

    The in-memory triage state has already changed when this is raised.
    """


class ImageLoadFailed(TriageError):
    """Raised when the provider could not deliver an image."""

    def __init__(self, asset_id: str, tier: object, reason: str = "") -> None:
        self.asset_id = asset_id
        self.tier = tier
        self.reason = reason
        super().__init__(f"Image load failed for {asset_id} ({tier}): {reason}")


class DeletionFailed(TriageError):
    """Raised or returned when the provider rejected a batch delete."""

    def __init__(self, asset_ids: Iterable[str], reason: str = "") -> None:
        self.asset_ids = sorted(asset_ids)
        self.reason = reason
        super().__init__(f"Deleting {len(self.asset_ids)} photo(s) failed: {reason}")
