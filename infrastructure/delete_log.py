"""Audit CSV for commits of photos marked for deletion."""

from __future__ import annotations

import csv
from datetime import datetime
import os
from pathlib import Path

from loguru import logger

from core.services.interfaces import DeletionResult
from infrastructure.logging import DELETE_LOG_PATTERN, get_delete_log_directory, latest_file

DELETE_LOG_HEADERS = ["AssetId", "Success", "Reason"]


class DeleteAuditLog:
    """Writes one `delete_<timestamp>.csv` per commit.

    Instances are callables matching the coordinator's audit hook.
    """

    def __init__(self, log_dir: str | Path | None = None) -> None:
        self._dir = Path(os.path.expandvars(str(log_dir))) if log_dir else Path(
            get_delete_log_directory()
        )

    @property
    def directory(self) -> Path:
        return self._dir

    def __call__(self, asset_ids: list[str], result: DeletionResult) -> str:
        self._dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log_path = self._dir / f"delete_{ts}.csv"
        reason = result.error.reason if result.error is not None else ""
        with log_path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(DELETE_LOG_HEADERS)
            for asset_id in asset_ids:
                writer.writerow([asset_id, 1 if result.success else 0, reason])
        logger.info(
            "Delete log written: {} ({} {})",
            log_path,
            len(asset_ids),
            "deleted" if result.success else "failed",
        )
        return str(log_path)

    def latest(self) -> Path | None:
        """Return the most recent delete log, if any."""
        return latest_file(self._dir, DELETE_LOG_PATTERN)
