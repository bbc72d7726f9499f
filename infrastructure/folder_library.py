"""Asset provider over a folder tree of photos.

Identifiers are POSIX paths relative to the library root. Metadata comes from
EXIF via Pillow, images are decoded with Pillow (HEIC/HEIF when pillow-heif is
installed), and deletions go to the system recycle bin through send2trash.
A photo with a sibling video of the same stem (e.g. IMG_0001.HEIC +
IMG_0001.MOV) is treated as a live photo; only its still file is decoded and
both files are deleted together.
"""

from __future__ import annotations

import asyncio
from collections.abc import Container, Iterable
from datetime import datetime
import os
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError
from loguru import logger
from send2trash import send2trash

from core.errors import ImageLoadFailed
from core.services.interfaces import (
    AssetRecord,
    AuthorizationStatus,
    BatchDeleteResult,
    DeliveryMode,
    ImageRequest,
)
from infrastructure.settings import DEFAULT_EXTENSIONS
from infrastructure.utils import read_photo_metadata

try:  # pragma: no cover - optional dependency
    from pillow_heif import register_heif_opener  # type: ignore

    register_heif_opener()
    PIL_HEIF_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency
    PIL_HEIF_AVAILABLE = False

LIVE_COMPANION_EXTENSIONS = {".mov", ".mp4"}
STAGING_DIR_NAME = ".triage-staging"

_RESAMPLING = getattr(Image, "Resampling", Image)


class FolderAssetProvider:
    """`AssetProvider` implementation backed by the local filesystem."""

    def __init__(self, root: str | Path, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> None:
        self._root = Path(root).expanduser()
        self._extensions = {e.lower() for e in extensions}

    @property
    def root(self) -> Path:
        return self._root

    # Authorization
    async def authorization_status(self) -> AuthorizationStatus:
        return await asyncio.to_thread(self._status)

    async def request_authorization(self) -> AuthorizationStatus:
        # Nothing to prompt for: access is whatever the OS grants on the folder
        return await asyncio.to_thread(self._status)

    def _status(self) -> AuthorizationStatus:
        if not self._root.is_dir() or not os.access(self._root, os.R_OK | os.X_OK):
            return AuthorizationStatus.DENIED
        if not os.access(self._root, os.W_OK):
            return AuthorizationStatus.LIMITED
        return AuthorizationStatus.AUTHORIZED

    # Enumeration
    async def fetch_all(self) -> list[AssetRecord]:
        return await asyncio.to_thread(self._scan)

    def _scan(self) -> list[AssetRecord]:
        records: list[AssetRecord] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            # Skip hidden folders, including our own staging folders
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            video_stems = {
                Path(f).stem.lower()
                for f in filenames
                if Path(f).suffix.lower() in LIVE_COMPANION_EXTENSIONS
            }
            for name in filenames:
                if name.startswith(".") or Path(name).suffix.lower() not in self._extensions:
                    continue
                full = Path(dirpath) / name
                meta = read_photo_metadata(str(full))
                records.append(
                    AssetRecord(
                        id=full.relative_to(self._root).as_posix(),
                        creation_time=meta.creation_time,
                        width=meta.width,
                        height=meta.height,
                        is_live=Path(name).stem.lower() in video_stems,
                        location=meta.location,
                    )
                )
        records.sort(key=lambda r: r.id)
        records.sort(key=lambda r: r.creation_time or datetime.min, reverse=True)
        logger.info("Scanned {}: {} photos", self._root, len(records))
        return records

    # Decoding
    async def request_image(self, request: ImageRequest) -> Image.Image:
        return await asyncio.to_thread(self._decode, request)

    def _decode(self, request: ImageRequest) -> Image.Image:
        try:
            path = self._resolve(request.asset_id)
        except ValueError as ex:
            raise ImageLoadFailed(request.asset_id, request.tier.value, str(ex)) from ex
        fast = request.delivery is DeliveryMode.FAST_NO_NETWORK
        try:
            with Image.open(path) as im:
                if fast:
                    # JPEG decoders can downscale while decoding
                    im.draft("RGB", request.target_size)
                im.load()
                out = ImageOps.exif_transpose(im)
                if out is None or out is im:
                    out = im.copy()
            if out.mode not in ("RGB", "RGBA"):
                out = out.convert("RGBA" if "A" in out.getbands() else "RGB")
            resample = _RESAMPLING.BILINEAR if fast else _RESAMPLING.LANCZOS
            out.thumbnail(request.target_size, resample)
            return out
        except (OSError, UnidentifiedImageError, ValueError) as ex:
            raise ImageLoadFailed(request.asset_id, request.tier.value, str(ex)) from ex

    # Deletion
    async def delete_batch(self, ids: Iterable[str]) -> BatchDeleteResult:
        return await asyncio.to_thread(self._delete_batch, list(ids))

    def _delete_batch(self, ids: list[str]) -> BatchDeleteResult:
        """Stage every file first so a failure leaves the folder untouched."""
        # Ordered and duplicate free; a shared live video is staged once
        files: dict[Path, None] = {}
        for asset_id in ids:
            try:
                path = self._resolve(asset_id)
            except ValueError as ex:
                return BatchDeleteResult(success=False, reason=str(ex))
            if not path.is_file():
                logger.error("File does not exist: {}", path)
                return BatchDeleteResult(success=False, reason=f"File does not exist: {asset_id}")
            files[path] = None
        for path in list(files):
            files.update(dict.fromkeys(self._companions(path, files)))

        staged: list[tuple[Path, Path]] = []
        try:
            for path in files:
                target = path.parent / STAGING_DIR_NAME / path.name
                target.parent.mkdir(exist_ok=True)
                if target.exists():
                    raise FileExistsError(f"Staging target already exists: {target}")
                os.replace(path, target)
                staged.append((path, target))
        except OSError as ex:
            logger.error("Staging for delete failed, rolling back: {}", ex)
            self._restore(staged)
            return BatchDeleteResult(success=False, reason=str(ex))

        for done, (_, target) in enumerate(staged):
            try:
                send2trash(str(target))
            except OSError as ex:
                logger.error(
                    "Recycle failed for {} after {} file(s) were recycled: {}", target, done, ex
                )
                self._restore(staged[done:])
                self._cleanup(staged)
                return BatchDeleteResult(success=False, reason=str(ex))
        self._cleanup(staged)
        logger.info("Recycled {} file(s) for {} photo(s)", len(staged), len(ids))
        return BatchDeleteResult(success=True)

    # Internal helpers
    def _resolve(self, asset_id: str) -> Path:
        root = self._root.resolve()
        path = (root / asset_id).resolve()
        if root not in path.parents:
            raise ValueError(f"Asset id outside library: {asset_id}")
        return path

    def _companions(self, path: Path, removed: Container[Path]) -> list[Path]:
        """Live videos of `path` that no surviving still of the same stem needs."""
        stem = path.stem.lower()
        try:
            siblings = [p for p in path.parent.iterdir() if p.is_file() and p.stem.lower() == stem]
        except OSError:
            return []
        if any(p.suffix.lower() in self._extensions and p not in removed for p in siblings):
            return []
        return [p for p in siblings if p.suffix.lower() in LIVE_COMPANION_EXTENSIONS]

    def _restore(self, staged: list[tuple[Path, Path]]) -> None:
        for original, target in reversed(staged):
            try:
                os.replace(target, original)
            except OSError as ex:
                logger.error("Could not restore {} from {}: {}", original, target, ex)
        self._cleanup(staged)

    def _cleanup(self, staged: list[tuple[Path, Path]]) -> None:
        for folder in {target.parent for _, target in staged}:
            try:
                folder.rmdir()
            except OSError:
                pass  # still holds leftovers from an earlier run
