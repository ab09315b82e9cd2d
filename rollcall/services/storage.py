"""
Photo storage collaborator.

The core only ever sees opaque refs returned by :meth:`PhotoStorage.store`.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Protocol

from rollcall.core.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_PREFIXES = ("image/",)
_GENERIC_STREAM = "application/octet-stream"


class PhotoStorage(Protocol):
    async def store(self, data: bytes, content_type: str | None = None, *, prefix: str = "photo") -> str:
        ...

    async def fetch(self, ref: str) -> bytes:
        ...

    async def delete(self, ref: str) -> None:
        ...


def check_photo_upload(data: bytes, content_type: str | None, max_bytes: int) -> None:
    """Reject non-image uploads before they reach storage."""
    if not data:
        raise ValidationError("Photo upload is empty", field="photo")
    if len(data) > max_bytes:
        raise ValidationError(f"Photo exceeds {max_bytes} bytes", field="photo")
    if content_type and content_type != _GENERIC_STREAM and not content_type.startswith(_ALLOWED_PREFIXES):
        raise ValidationError("Images only", field="photo")


class LocalPhotoStorage:
    """Stores photos as files below *root*; refs are relative paths."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _path_for(self, ref: str) -> Path:
        path = (self._root / ref).resolve()
        if self._root not in path.parents:
            raise NotFound(f"Photo {ref!r} not found")
        return path

    async def store(self, data: bytes, content_type: str | None = None, *, prefix: str = "photo") -> str:
        extension = mimetypes.guess_extension(content_type or "") or ".jpg"
        ref = f"{prefix}/{uuid.uuid4().hex}{extension}"
        path = self._root / ref

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("Stored photo %s (%d bytes)", ref, len(data))
        return ref

    async def fetch(self, ref: str) -> bytes:
        path = self._path_for(ref)
        if not path.is_file():
            raise NotFound(f"Photo {ref!r} not found")
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, ref: str) -> None:
        """Remove a stored photo; unknown refs are ignored."""
        path = self._path_for(ref)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("Deleted photo %s", ref)
