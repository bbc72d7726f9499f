from __future__ import annotations

import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication
from loguru import logger

from app.viewmodels.triage_vm import TriageVM
from app.views.triage_window import TriageWindow
from core.services.asset_catalog import AssetCatalog
from core.services.deletion_coordinator import DeletionCoordinator
from core.services.image_cache import ImageCache
from core.services.triage_session import TriageSession
from core.services.triage_store import TriageStore
from infrastructure.delete_log import DeleteAuditLog
from infrastructure.folder_library import PIL_HEIF_AVAILABLE, FolderAssetProvider
from infrastructure.kv_store import JsonKeyValueStore, MemoryKeyValueStore
from infrastructure.logging import init_logging
from infrastructure.settings import JsonSettings, TriageSettings

BASE_DIR = Path(__file__).parent


def _load_settings(path: Path) -> TriageSettings:
    try:
        return TriageSettings.from_settings(JsonSettings(path))
    except (FileNotFoundError, ValueError) as ex:
        logger.warning("Using default settings: {}", ex)
        return TriageSettings.from_settings(None)


def _open_substrate(path: Path) -> JsonKeyValueStore | MemoryKeyValueStore:
    try:
        return JsonKeyValueStore(path)
    except (OSError, ValueError) as ex:
        # Corrupt or unreadable store: triage still works for this run
        logger.error("Cannot open triage store {}: {}", path, ex)
        return MemoryKeyValueStore()


def main() -> int:
    settings_path = Path(sys.argv[1]) if len(sys.argv) > 1 else BASE_DIR / "settings.json"
    cfg = _load_settings(settings_path)
    init_logging(cfg.log_dir)
    logger.info("Library: {} (HEIF support: {})", cfg.library_root, PIL_HEIF_AVAILABLE)

    app = QApplication(sys.argv[:1])

    store = TriageStore(_open_substrate(cfg.store_path))
    provider = FolderAssetProvider(cfg.library_root, cfg.extensions)
    catalog = AssetCatalog(provider, store)
    session = TriageSession(catalog, store)
    cache = ImageCache(
        provider,
        capacity=cfg.cache_capacity,
        thumbnail_size=cfg.thumbnail_size,
        full_size=cfg.full_size,
    )
    delete_log = DeleteAuditLog(cfg.delete_log_dir)
    coordinator = DeletionCoordinator(provider, catalog, session, cache=cache, audit=delete_log)
    vm = TriageVM(session, coordinator, cache, prefetch=cfg.prefetch)

    win = TriageWindow(vm, delete_log)
    win.statusBar().showMessage("Loading library…")
    win.show()
    vm.start()

    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
