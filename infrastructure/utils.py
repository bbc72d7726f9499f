"""Utilities for photo metadata extraction (EXIF and filesystem).

This module centralizes date and geolocation parsing so the folder library
can depend on a single behavior. It uses best-effort parsing and will not
raise on errors; callers should expect `None` when data is not available.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import os
from typing import Any

from PIL import Image, UnidentifiedImageError
from loguru import logger

from core.models import GeoLocation

# EXIF tags
_TAG_DATETIME = 306
_TAG_DATETIME_ORIGINAL = 36867
_TAG_EXIF_IFD = 0x8769
_TAG_GPS_IFD = 0x8825


@dataclass
class PhotoMetadata:
    creation_time: datetime | None = None
    width: int = 0
    height: int = 0
    location: GeoLocation | None = None


def get_filesystem_creation_datetime(path: str) -> datetime | None:
    """Best-effort file creation time.

    Uses `st_birthtime` where the platform has it, otherwise modification
    time, which survives copies better than ctime on Linux.
    """
    try:
        st = os.stat(path)
        ts = getattr(st, "st_birthtime", None) or st.st_mtime
        return datetime.fromtimestamp(ts)
    except (OSError, ValueError) as ex:
        logger.debug("stat failed for {}: {}", path, ex)
        return None


def parse_exif_datetime(value: Any) -> datetime | None:
    """Parse an EXIF timestamp such as "2024:05:01 12:30:00"."""
    if not value:
        return None
    val_str = str(value).strip().rstrip("\x00")
    try:
        if len(val_str) >= 19 and val_str[4] == ":" and val_str[7] == ":":
            return datetime.strptime(val_str[:19], "%Y:%m:%d %H:%M:%S")
        return datetime.fromisoformat(val_str.replace("/", "-")).replace(tzinfo=None)
    except (ValueError, TypeError):
        return None


def _dms_to_degrees(dms: Any, ref: Any) -> float | None:
    try:
        degrees, minutes, seconds = (float(x) for x in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60.0 + seconds / 3600.0
    if str(ref).upper() in {"S", "W"}:
        value = -value
    return value


def parse_gps(gps: Any) -> GeoLocation | None:
    """Convert an EXIF GPS IFD mapping to a `GeoLocation`."""
    if not gps:
        return None
    # 1/2: latitude ref/value, 3/4: longitude ref/value
    lat = _dms_to_degrees(gps.get(2), gps.get(1))
    lon = _dms_to_degrees(gps.get(4), gps.get(3))
    if lat is None or lon is None:
        return None
    return GeoLocation(latitude=lat, longitude=lon)


def read_photo_metadata(path: str) -> PhotoMetadata:
    """Read dimensions, capture date, and location from `path`.

    Falls back to the filesystem timestamp when EXIF lacks a date.
    """
    meta = PhotoMetadata()
    try:
        with Image.open(path) as im:
            meta.width, meta.height = im.size
            exif = im.getexif()
            if exif:
                sub = exif.get_ifd(_TAG_EXIF_IFD)
                meta.creation_time = parse_exif_datetime(
                    sub.get(_TAG_DATETIME_ORIGINAL) or exif.get(_TAG_DATETIME)
                )
                meta.location = parse_gps(exif.get_ifd(_TAG_GPS_IFD))
                # Orientations 5-8 rotate by 90 degrees
                if exif.get(0x0112) in (5, 6, 7, 8):
                    meta.width, meta.height = meta.height, meta.width
    except (OSError, UnidentifiedImageError, ValueError, TypeError) as ex:
        logger.debug("EXIF read failed for {}: {}", path, ex)
    if meta.creation_time is None:
        meta.creation_time = get_filesystem_creation_datetime(path)
    return meta
