from __future__ import annotations

from datetime import datetime

from app.viewmodels.photo_vm import PhotoVM
from core.models import GeoLocation, PhotoItem, TriageState


def test_caption_joins_known_parts():
    item = PhotoItem(
        id="2024/IMG_0001.HEIC",
        creation_time=datetime(2024, 5, 1, 12, 30, 45),
        width=4032,
        height=3024,
        is_live=True,
        location=GeoLocation(latitude=25.033964, longitude=121.564468),
        state=TriageState.MARKED_FOR_DELETION,
    )

    vm = PhotoVM(item)

    assert vm.file_name == "IMG_0001.HEIC"
    assert vm.caption == (
        "IMG_0001.HEIC · 2024-05-01 12:30 · 4032 × 3024 · 25.0340, 121.5645"
        " · Live · Marked for deletion"
    )


def test_caption_skips_missing_parts():
    vm = PhotoVM(PhotoItem(id="a.jpg", creation_time=None))

    assert vm.date_text == ""
    assert vm.size_text == ""
    assert vm.location_text == ""
    assert vm.caption == "a.jpg"
