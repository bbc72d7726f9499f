"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_EXTENSIONS = (".jpg", ".jpeg", ".png", ".heic", ".heif", ".webp", ".tif", ".tiff")


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node


def default_data_directory() -> Path:
    """Per-user data directory for the store, logs, and delete logs."""
    base = os.environ.get("LOCALAPPDATA") or os.environ.get("XDG_DATA_HOME")
    if base:
        return Path(base) / "PhotoTriage"
    return Path.home() / ".local" / "share" / "PhotoTriage"


def _int(settings: JsonSettings, key: str, default: int) -> int:
    raw = settings.get(key, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except (ValueError, TypeError):
        logger.warning("Invalid integer setting {}; using {}", key, default)
        return default


def _size(settings: JsonSettings, key: str, default: tuple[int, int]) -> tuple[int, int]:
    raw = settings.get(key, None)
    try:
        if isinstance(raw, int):
            return (raw, raw)
        if isinstance(raw, list) and len(raw) == 2:
            return (int(raw[0]), int(raw[1]))
    except (ValueError, TypeError):
        pass
    if raw is not None:
        logger.warning("Invalid size setting {}; using {}", key, default)
    return default


def _path(settings: JsonSettings, key: str, default: Path) -> Path:
    raw = settings.get(key, None)
    if isinstance(raw, str) and raw:
        return Path(os.path.expanduser(os.path.expandvars(raw)))
    return default


@dataclass
class TriageSettings:
    """Typed view over `settings.json` with defaults."""

    library_root: Path = field(default_factory=lambda: Path.home() / "Pictures")
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    store_path: Path = field(default_factory=lambda: default_data_directory() / "triage.json")
    cache_capacity: int = 256
    thumbnail_size: tuple[int, int] = (200, 200)
    full_size: tuple[int, int] = (800, 1200)
    prefetch: int = 3
    delete_log_dir: Path = field(default_factory=lambda: default_data_directory() / "delete_logs")
    log_dir: Path = field(default_factory=lambda: default_data_directory() / "logs")

    @classmethod
    def from_settings(cls, settings: JsonSettings | None) -> TriageSettings:
        """Build from `settings`, falling back to defaults per key."""
        base = cls()
        if settings is None:
            return base
        raw_ext = settings.get("library.extensions", None)
        extensions = base.extensions
        if isinstance(raw_ext, list) and raw_ext:
            extensions = tuple(
                e.lower() if str(e).startswith(".") else f".{str(e).lower()}" for e in raw_ext
            )
        return cls(
            library_root=_path(settings, "library.root", base.library_root),
            extensions=extensions,
            store_path=_path(settings, "store.path", base.store_path),
            cache_capacity=_int(settings, "cache.capacity", base.cache_capacity),
            thumbnail_size=_size(settings, "image.thumbnail_size", base.thumbnail_size),
            full_size=_size(settings, "image.full_size", base.full_size),
            prefetch=_int(settings, "image.prefetch", base.prefetch),
            delete_log_dir=_path(settings, "delete.log_dir", base.delete_log_dir),
            log_dir=_path(settings, "logging.dir", base.log_dir),
        )
