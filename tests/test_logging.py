from __future__ import annotations

import os

from infrastructure.logging import (
    DELETE_LOG_PATTERN,
    LOG_FILE_PATTERN,
    find_latest_log_file,
    latest_file,
)


def test_latest_file_picks_newest(tmp_path):
    old = tmp_path / "triage_20240101.log"
    new = tmp_path / "triage_20240102.log"
    old.write_text("a", encoding="utf-8")
    new.write_text("b", encoding="utf-8")
    os.utime(old, (1_000_000, 1_000_000))
    os.utime(new, (2_000_000, 2_000_000))
    (tmp_path / "delete_1.csv").write_text("AssetId", encoding="utf-8")

    assert latest_file(tmp_path, LOG_FILE_PATTERN) == new
    assert find_latest_log_file(tmp_path) == new
    assert latest_file(tmp_path, DELETE_LOG_PATTERN) == tmp_path / "delete_1.csv"


def test_latest_file_missing_directory(tmp_path):
    assert latest_file(tmp_path / "nope", LOG_FILE_PATTERN) is None
    assert find_latest_log_file(tmp_path) is None
