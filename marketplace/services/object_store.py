"""Local-disk object store for uploaded ID images.

Handles are relative paths (``<folder>/<uuid><ext>``) under ``upload_dir``; callers treat them
as opaque strings.
"""
import logging
import uuid
from pathlib import Path

from fastapi import UploadFile

from marketplace.config import get_settings
from marketplace.services.errors import InvalidInput

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".pdf"}
_CHUNK_SIZE = 1024 * 1024


class LocalObjectStore:
    """Confine file access to the configured upload directory."""

    def __init__(self, base_dir: str | Path | None = None, max_bytes: int | None = None):
        settings = get_settings()
        self.base_dir = Path(base_dir or settings.upload_dir).resolve()
        self.max_bytes = max_bytes if max_bytes is not None else settings.upload_max_bytes

    def path_for(self, handle: str) -> Path:
        path = (self.base_dir / handle).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"handle outside upload directory: {handle}")
        return path

    def upload(self, file: UploadFile, folder: str) -> str:
        """Write ``file`` under ``folder`` and return its handle."""
        ext = Path(file.filename or "").suffix.lower()
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            raise InvalidInput(f"Unsupported file type for {file.filename or 'upload'}.")
        folder = folder.strip("/") or "misc"
        handle = f"{folder}/{uuid.uuid4().hex}{ext}"
        path = self.path_for(handle)
        path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        file.file.seek(0)
        with path.open("wb") as out:
            while True:
                chunk = file.file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    out.close()
                    path.unlink(missing_ok=True)
                    raise InvalidInput(f"File too large (max {self.max_bytes // (1024 * 1024)} MB).")
                out.write(chunk)
        if written == 0:
            path.unlink(missing_ok=True)
            raise InvalidInput("File is empty.")
        return handle

    def delete(self, handle: str) -> bool:
        """Remove ``handle`` from disk. Missing files count as deleted."""
        try:
            path = self.path_for(handle)
        except ValueError:
            logger.warning("Refusing to delete handle outside upload directory: %s", handle)
            return False
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", handle, e)
            return False
        return True

    def release(self, handles) -> None:
        """Best-effort delete of several handles; ``None`` entries are skipped."""
        for handle in handles or ():
            if handle:
                self.delete(handle)


def get_object_store() -> LocalObjectStore:
    return LocalObjectStore()
