"""Flat key/value substrates for the triage store.

`JsonKeyValueStore` keeps all keys in one JSON document and rewrites it
through a temporary file plus `os.replace`, so every single-key write is
atomic on disk. `MemoryKeyValueStore` is the non-durable counterpart.
"""

from __future__ import annotations

from collections.abc import Iterable
import json
import os
from pathlib import Path
import threading
from typing import Any

from loguru import logger


class JsonKeyValueStore:
    """JSON-file substrate with dotted string keys."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}
        if self._path.exists():
            # Unreadable or corrupt files surface as OSError/ValueError
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError(f"Store file is not a JSON object: {self._path}")
            self._data = raw

    @property
    def path(self) -> Path:
        return self._path

    def get_string_set(self, key: str) -> set[str] | None:
        with self._lock:
            value = self._data.get(key)
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValueError(f"Key {key} does not hold a string set")
        return {str(v) for v in value}

    def set_string_set(self, key: str, values: Iterable[str]) -> None:
        self._update(key, sorted({str(v) for v in values}))

    def get_int(self, key: str) -> int | None:
        with self._lock:
            value = self._data.get(key)
        if value is None:
            return None
        return int(value)

    def set_int(self, key: str, value: int) -> None:
        self._update(key, int(value))

    def remove(self, key: str) -> None:
        self._update(key, None)

    def _update(self, key: str, value: Any) -> None:
        with self._lock:
            data = dict(self._data)
            if value is None:
                if key not in data:
                    return
                data.pop(key)
            else:
                data[key] = value
            self._flush(data)
            self._data = data

    def _flush(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=1)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._path)
        logger.trace("Store flushed: {}", self._path)


class MemoryKeyValueStore:
    """Dictionary-backed substrate; survives nothing."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get_string_set(self, key: str) -> set[str] | None:
        value = self._data.get(key)
        return set(value) if value is not None else None

    def set_string_set(self, key: str, values: Iterable[str]) -> None:
        self._data[key] = frozenset(values)

    def get_int(self, key: str) -> int | None:
        return self._data.get(key)

    def set_int(self, key: str, value: int) -> None:
        self._data[key] = int(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        """Copy of the raw contents, for comparisons."""
        return dict(self._data)
