"""In-memory object URLs for recorded blobs.

Object URLs let the preview and download paths refer to a sealed blob
without copying it. Every URL stays valid until it is revoked.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Optional

from castmate.core.models import MediaBlob

logger = logging.getLogger(__name__)

URL_SCHEME = "blob:castmate/"


class ObjectURLRegistry:
    """Maps ``blob:castmate/<uuid>`` URLs to blobs."""

    def __init__(self):
        self._urls: dict[str, MediaBlob] = {}
        self._lock = threading.Lock()

    def create(self, blob: MediaBlob) -> str:
        url = f"{URL_SCHEME}{uuid.uuid4()}"
        with self._lock:
            self._urls[url] = blob
        logger.debug(f"Created object URL {url} ({blob.size} bytes)")
        return url

    def resolve(self, url: str) -> Optional[MediaBlob]:
        with self._lock:
            return self._urls.get(url)

    def revoke(self, url: Optional[str]) -> None:
        """Release a URL. Unknown or None URLs are ignored."""
        if url is None:
            return
        with self._lock:
            removed = self._urls.pop(url, None)
        if removed is not None:
            logger.debug(f"Revoked object URL {url}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls
