"""Loguru setup plus helpers to locate and open log files."""

from __future__ import annotations

import os
from pathlib import Path
import subprocess
import sys

from loguru import logger

from infrastructure.settings import default_data_directory

LOG_FILE_PATTERN = "triage_*.log"
DELETE_LOG_PATTERN = "delete_*.csv"

# Directory passed to the last init_logging call
_active_log_dir: Path | None = None


def get_log_directory() -> str:
    """Directory of the rotating application log."""
    if _active_log_dir is not None:
        return str(_active_log_dir)
    return str(default_data_directory() / "logs")


def get_delete_log_directory() -> str:
    """Default directory for delete audit CSVs."""
    return str(default_data_directory() / "delete_logs")


def init_logging(log_dir: str | Path | None = None, level: str = "INFO") -> Path:
    """Send logs to a rotating file under `log_dir` and warnings to stderr.

    Returns the directory in use.
    """
    global _active_log_dir  # pylint: disable=global-statement
    log_path = Path(log_dir) if log_dir is not None else default_data_directory() / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        str(log_path / "triage_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )
    # Windowed builds have no console
    if sys.stderr is not None:
        logger.add(sys.stderr, level="WARNING")
    _active_log_dir = log_path
    logger.info("Logging to {}", log_path)
    return log_path


def latest_file(directory: str | Path, pattern: str) -> Path | None:
    """Most recently modified file in `directory` matching `pattern`."""
    try:
        files = list(Path(directory).glob(pattern))
        if not files:
            return None
        return max(files, key=lambda p: p.stat().st_mtime)
    except (OSError, ValueError):
        return None


def find_latest_log_file(log_dir: str | Path | None = None) -> Path | None:
    return latest_file(log_dir or get_log_directory(), LOG_FILE_PATTERN)


def open_file_in_default_app(file_path: str | Path) -> bool:
    """Open a file with the platform's default handler."""
    try:
        if os.name == "nt":
            os.startfile(str(file_path))  # type: ignore[attr-defined]  # pylint: disable=no-member
        else:
            opener = "open" if sys.platform == "darwin" else "xdg-open"
            subprocess.run([opener, str(file_path)], check=True)
        return True
    except (OSError, subprocess.CalledProcessError) as ex:
        logger.warning("Could not open {}: {}", file_path, ex)
        return False


def open_latest_log() -> bool:
    log_file = find_latest_log_file()
    return open_file_in_default_app(log_file) if log_file else False
