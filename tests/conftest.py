from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
import sys
import time

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.services.asset_catalog import AssetCatalog  # noqa: E402
from core.services.deletion_coordinator import DeletionCoordinator  # noqa: E402
from core.services.image_cache import ImageCache  # noqa: E402
from core.services.interfaces import (  # noqa: E402
    AssetRecord,
    AuthorizationStatus,
    BatchDeleteResult,
    ImageRequest,
)
from core.services.triage_session import TriageSession  # noqa: E402
from core.services.triage_store import TriageStore  # noqa: E402
from infrastructure.kv_store import MemoryKeyValueStore  # noqa: E402

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


def make_records(names: Iterable[str]) -> list[AssetRecord]:
    """Records in provider order (newest first), one minute apart."""
    return [
        AssetRecord(id=name, creation_time=BASE_TIME - timedelta(minutes=i), width=4, height=3)
        for i, name in enumerate(names)
    ]


class FakeImage:
    def __init__(self, asset_id: str, tier: str) -> None:
        self.asset_id = asset_id
        self.tier = tier


class FakeProvider:
    """In-memory `AssetProvider` with knobs for failures and slow fetches."""

    def __init__(self, records: list[AssetRecord] | None = None) -> None:
        self.records = list(records or [])
        self.status = AuthorizationStatus.AUTHORIZED
        self.status_after_request = AuthorizationStatus.AUTHORIZED
        self.authorization_requests = 0
        self.image_calls: list[ImageRequest] = []
        self.failing_images: set[str] = set()
        # When set, image requests wait until the event is set
        self.gate: asyncio.Event | None = None
        self.delete_calls: list[list[str]] = []
        self.fail_delete = False
        self.raise_on_delete: Exception | None = None

    async def authorization_status(self) -> AuthorizationStatus:
        return self.status

    async def request_authorization(self) -> AuthorizationStatus:
        self.authorization_requests += 1
        self.status = self.status_after_request
        return self.status

    async def fetch_all(self) -> list[AssetRecord]:
        return list(self.records)

    async def request_image(self, request: ImageRequest) -> FakeImage:
        self.image_calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if request.asset_id in self.failing_images:
            raise OSError(f"cannot decode {request.asset_id}")
        return FakeImage(request.asset_id, request.tier.value)

    async def delete_batch(self, ids: Iterable[str]) -> BatchDeleteResult:
        ids = list(ids)
        self.delete_calls.append(ids)
        if self.raise_on_delete is not None:
            raise self.raise_on_delete
        if self.fail_delete:
            return BatchDeleteResult(success=False, reason="user declined")
        gone = set(ids)
        self.records = [r for r in self.records if r.id not in gone]
        return BatchDeleteResult(success=True)


class FlakySubstrate(MemoryKeyValueStore):
    """Memory substrate whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise OSError("disk full")

    def set_string_set(self, key, values) -> None:
        self._check()
        super().set_string_set(key, values)

    def set_int(self, key, value) -> None:
        self._check()
        super().set_int(key, value)

    def remove(self, key) -> None:
        self._check()
        super().remove(key)


class SlowSubstrate(MemoryKeyValueStore):
    """Memory substrate whose set writes take `delay` seconds."""

    def __init__(self) -> None:
        super().__init__()
        self.delay = 0.0

    def set_string_set(self, key, values) -> None:
        if self.delay:
            time.sleep(self.delay)
        super().set_string_set(key, values)


class Triage:
    """All core components wired over one fake provider."""

    def __init__(self, names: Iterable[str], substrate: MemoryKeyValueStore | None = None) -> None:
        self.substrate = substrate if substrate is not None else MemoryKeyValueStore()
        self.provider = FakeProvider(make_records(names))
        self.store = TriageStore(self.substrate)
        self.catalog = AssetCatalog(self.provider, self.store)
        self.warnings: list[str] = []
        self.session = TriageSession(self.catalog, self.store, on_warning=self.warnings.append)
        self.cache = ImageCache(self.provider, capacity=16)
        self.audits: list[tuple[list[str], object]] = []
        self.coordinator = DeletionCoordinator(
            self.provider,
            self.catalog,
            self.session,
            cache=self.cache,
            audit=self._audit,
        )

    def _audit(self, ids, result):
        self.audits.append((list(ids), result))
        return None

    def ids(self) -> list[str]:
        return [it.id for it in self.catalog.items]


@pytest.fixture()
def substrate() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def store(substrate: MemoryKeyValueStore) -> TriageStore:
    return TriageStore(substrate)


@pytest.fixture()
def triage() -> Triage:
    return Triage(["A", "B", "C", "D", "E"])


def run(coro):
    """Run `coro` to completion on a fresh event loop."""
    return asyncio.run(coro)
