"""Photo storage for attendance selfies.

The gate talks to a ``PhotoStorage``; the default implementation writes files
under ``settings.UPLOAD_DIR``. Routers receive it through ``get_photo_storage``
so tests can swap in another implementation with ``dependency_overrides``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from typing import Optional, Protocol

from workday.common.exceptions import ValidationException
from workday.config import settings

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(image/(?:jpeg|jpg|png|webp));base64,(.+)$", re.DOTALL)
_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class PhotoStorage(Protocol):
    def store(self, data: bytes, logical_path: str) -> str:
        """Persist *data* and return a reference to it."""
        ...

    def delete(self, reference: str) -> None:
        ...


class LocalPhotoStorage:
    """Files under a root directory; references are paths relative to it."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    def _resolve(self, relative: str) -> str:
        path = os.path.abspath(os.path.join(self.root, relative))
        if os.path.commonpath([self.root, path]) != self.root:
            raise ValueError(f"Path escapes storage root: {relative!r}")
        return path

    def store(self, data: bytes, logical_path: str) -> str:
        relative = logical_path.lstrip("/")
        path = self._resolve(relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return relative

    def delete(self, reference: str) -> None:
        path = self._resolve(reference)
        if os.path.exists(path):
            os.remove(path)


def get_photo_storage() -> PhotoStorage:
    return LocalPhotoStorage(settings.UPLOAD_DIR)


# ── Payload decoding ────────────────────────────────────────────────

def decode_photo(data_url: Optional[str]) -> Optional[tuple[bytes, str]]:
    """Decode a ``data:image/...;base64,`` URL into (bytes, file extension).

    Returns None when no photo was sent.
    """
    if not data_url:
        return None

    match = _DATA_URL_RE.match(data_url.strip())
    if match is None:
        raise ValidationException(
            {"photo": ["Photo must be a base64 data URL (JPEG, PNG or WebP)."]}
        )
    mime, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationException({"photo": ["Photo is not valid base64."]})

    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(data) > max_bytes:
        raise ValidationException(
            {"photo": [f"Photo too large. Maximum size is {settings.MAX_UPLOAD_SIZE_MB} MB."]}
        )
    return data, _EXTENSIONS[mime]


def store_photo(
    storage: PhotoStorage,
    photo: Optional[tuple[bytes, str]],
    logical_stem: str,
) -> Optional[str]:
    """Store a decoded photo; a storage failure is logged and yields None."""
    if photo is None:
        return None
    data, ext = photo
    try:
        return storage.store(data, f"{logical_stem}{ext}")
    except Exception:
        logger.exception("Photo storage failed for %s", logical_stem)
        return None


def discard_photo(storage: PhotoStorage, reference: Optional[str]) -> None:
    """Remove a stored photo whose record was never written; failures are logged."""
    if reference is None:
        return
    try:
        storage.delete(reference)
    except Exception:
        logger.exception("Could not remove orphaned photo %s", reference)
