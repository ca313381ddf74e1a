"""
Media storage: uploaded files are written under the upload directory and
served through the static mount in ``main.py``.
"""
from __future__ import annotations

import os
from typing import Optional

import structlog
from bson import ObjectId
from fastapi import UploadFile

from config import get_settings
from errors import UpstreamFailure, ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_EXTENSIONS = {
    "videos": ".mp4",
    "thumbnails": ".jpg",
    "avatars": ".jpg",
    "covers": ".jpg",
}


class MediaError(Exception):
    """A stored file could not be removed."""


class MediaStorage:
    def __init__(self, root: str, url_prefix: str):
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix.rstrip("/")
        for folder in DEFAULT_EXTENSIONS:
            os.makedirs(os.path.join(self.root, folder), exist_ok=True)

    async def save(self, upload: Optional[UploadFile], folder: str) -> str:
        """Store an upload and return its public URL."""
        if upload is None or not upload.filename:
            raise ValidationError("File is required")
        ext = os.path.splitext(upload.filename)[1] or DEFAULT_EXTENSIONS[folder]
        filename = f"{ObjectId()}{ext}"
        path = os.path.join(self.root, folder, filename)
        try:
            content = await upload.read()
            with open(path, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.error("media_upload_failed", folder=folder, error=str(e))
            raise UpstreamFailure("File upload failed") from e
        logger.info("media_stored", folder=folder, filename=filename, size=len(content))
        return f"{self.url_prefix}/{folder}/{filename}"

    def path_for(self, url: str) -> str:
        if not url or not url.startswith(self.url_prefix + "/"):
            raise MediaError(f"not a stored media url: {url!r}")
        relative = url[len(self.url_prefix) + 1:]
        path = os.path.abspath(os.path.join(self.root, relative))
        if not path.startswith(self.root + os.sep):
            raise MediaError(f"media url escapes the upload directory: {url!r}")
        return path

    def delete(self, url: str) -> None:
        path = self.path_for(url)
        try:
            os.remove(path)
        except OSError as e:
            raise MediaError(f"could not delete {url!r}: {e}") from e

    def discard(self, url: Optional[str]) -> bool:
        """Best-effort delete. A failure is logged and reported, never raised."""
        if not url:
            return True
        try:
            self.delete(url)
        except MediaError as e:
            logger.warning("media_cleanup_failed", url=url, error=str(e))
            return False
        return True


_storage: Optional[MediaStorage] = None


def get_media() -> MediaStorage:
    global _storage
    if _storage is None:
        settings = get_settings()
        _storage = MediaStorage(settings.upload_dir, settings.media_url_prefix)
    return _storage
