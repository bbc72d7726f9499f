"""Lightweight view model wrapper around `PhotoItem`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

from core.models import PhotoItem, TriageState

STATE_LABELS = {
    TriageState.UNPROCESSED: "",
    TriageState.KEPT: "Kept",
    TriageState.MARKED_FOR_DELETION: "Marked for deletion",
    TriageState.DELETED: "Deleted",
}


@dataclass
class PhotoVM:
    """Expose convenient properties for bindings/templates."""

    item: PhotoItem

    @property
    def file_name(self) -> str:
        """Base name of the asset id."""
        return PurePosixPath(self.item.id).name

    @property
    def date_text(self) -> str:
        """Creation time formatted for display (empty when unknown)."""
        dt = self.item.creation_time
        return dt.strftime("%Y-%m-%d %H:%M") if dt else ""

    @property
    def size_text(self) -> str:
        if self.item.width and self.item.height:
            return f"{self.item.width} × {self.item.height}"
        return ""

    @property
    def location_text(self) -> str:
        loc = self.item.location
        if loc is None:
            return ""
        return f"{loc.latitude:.4f}, {loc.longitude:.4f}"

    @property
    def state_label(self) -> str:
        return STATE_LABELS[self.item.state]

    @property
    def caption(self) -> str:
        """One-line summary shown under the photo."""
        parts = [self.file_name, self.date_text, self.size_text, self.location_text]
        if self.item.is_live:
            parts.append("Live")
        if self.state_label:
            parts.append(self.state_label)
        return " · ".join(p for p in parts if p)
