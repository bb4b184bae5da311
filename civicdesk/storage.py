"""Upload store.

Files live under ``UPLOAD_DIR/<folder>/`` and are addressed by their public
URL path ``/uploads/<folder>/<name>``. Callers validate size and type before
saving; the store only writes, resolves and deletes.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import uuid
from collections.abc import Mapping

from flask import current_app

log = logging.getLogger("civicdesk.storage")

URL_PREFIX = "/uploads"

REQUEST_IMAGES = "request-images"
REQUEST_TYPE_ICONS = "request-type-icons"
SERVICE_OPTION_IMAGES = "service-option-images"
DAILY_FILES = "daily-files"
ID_CARDS = "idcards"
PROFILES = "profiles"
FOLDERS = (REQUEST_IMAGES, REQUEST_TYPE_ICONS, SERVICE_OPTION_IMAGES, DAILY_FILES, ID_CARDS, PROFILES)

# mime -> stored extension
REQUEST_IMAGE_MIMES: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}
ICON_MIMES: dict[str, str] = {"image/svg+xml": "svg", **REQUEST_IMAGE_MIMES}
MAX_ICON_BYTES = 1024 * 1024
MAX_OPTION_IMAGE_BYTES = 2 * 1024 * 1024
MAX_DATA_URL_IMAGE_BYTES = 5 * 1024 * 1024

_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


class DataUrlError(ValueError):
    """Raised for data URLs that are malformed or carry a non-image payload."""


def decode_data_url(value: str) -> tuple[str, bytes]:
    m = _DATA_URL.match(value.strip())
    if not m:
        raise DataUrlError("expected a base64 image data URL")
    try:
        data = base64.b64decode(m.group(2), validate=False)
    except (binascii.Error, ValueError) as e:
        raise DataUrlError("invalid base64 payload") from e
    return m.group(1).lower(), data


class UploadStore:
    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _dir(self, folder: str) -> str:
        if folder not in FOLDERS:
            raise ValueError(f"unknown upload folder '{folder}'")
        path = os.path.join(self.root, folder)
        os.makedirs(path, exist_ok=True)
        return path

    def save_bytes(self, folder: str, data: bytes, ext: str) -> str:
        """Write ``data`` under ``folder`` and return its public URL path."""
        name = f"{uuid.uuid4().hex}.{ext.lstrip('.').lower()}"
        path = os.path.join(self._dir(folder), name)
        with open(path, "wb") as fh:
            fh.write(data)
        log.debug("stored upload folder=%s name=%s bytes=%d", folder, name, len(data))
        return f"{URL_PREFIX}/{folder}/{name}"

    def save_data_url(
        self,
        folder: str,
        value: str,
        *,
        allowed: Mapping[str, str] = REQUEST_IMAGE_MIMES,
        max_bytes: int = MAX_DATA_URL_IMAGE_BYTES,
    ) -> str:
        mime, data = decode_data_url(value)
        ext = allowed.get(mime)
        if ext is None:
            raise DataUrlError(f"unsupported image type {mime}")
        if len(data) > max_bytes:
            raise DataUrlError("image too large")
        return self.save_bytes(folder, data, ext)

    def path_for(self, url: str) -> str | None:
        """Filesystem path for a URL produced by this store, or None when foreign."""
        if not url or not url.startswith(URL_PREFIX + "/"):
            return None
        rel = url[len(URL_PREFIX) + 1 :]
        path = os.path.abspath(os.path.join(self.root, rel))
        if os.path.commonpath([path, self.root]) != self.root:
            return None
        return path

    def delete(self, url: str | None) -> bool:
        path = self.path_for(url or "")
        if path is None or not os.path.isfile(path):
            return False
        try:
            os.remove(path)
        except OSError:
            log.warning("could not remove upload %s", url, exc_info=True)
            return False
        return True


def get_upload_store() -> UploadStore:
    return current_app.extensions["civicdesk.uploads"]


__all__ = [
    "UploadStore",
    "DataUrlError",
    "decode_data_url",
    "get_upload_store",
    "REQUEST_IMAGE_MIMES",
    "ICON_MIMES",
    "MAX_ICON_BYTES",
    "MAX_OPTION_IMAGE_BYTES",
    "FOLDERS",
]
