from __future__ import annotations

import logging
from typing import Union
from urllib.parse import quote

import requests

from .config import DEFAULT_API_URL

logger = logging.getLogger(__name__)

EPUB_CONTENT_TYPE = "application/epub+zip"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


class StorageError(RuntimeError):
    """Raised when an artifact cannot be stored."""


def epub_key(source_id: int) -> str:
    return f"books/{source_id}/original.epub"


def cover_extension(media_type: str) -> str:
    return "png" if "png" in (media_type or "").lower() else "jpg"


def cover_key(source_id: int, media_type: str) -> str:
    return f"books/{source_id}/cover.{cover_extension(media_type)}"


def chapter_key(source_id: int, chapter_id: str) -> str:
    return f"books/{source_id}/chapters/{chapter_id}.html"


def image_key(source_id: int, filename: str) -> str:
    return f"books/{source_id}/images/{filename}"


class StorageClient:
    """Object storage reached through the metadata service's upload endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        api_key: str = "",
        public_url: str = "",
        timeout: float = 120.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.public_url = public_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers["X-Internal-Key"] = api_key

    def public_url_for(self, key: str) -> str:
        return f"{self.public_url}/{key}" if self.public_url else key

    def upload(self, key: str, data: Union[bytes, str], content_type: str) -> str:
        body = data.encode("utf-8") if isinstance(data, str) else data
        url = f"{self.base_url}/internal/r2/{quote(key)}"
        try:
            resp = self._session.put(
                url,
                data=body,
                headers={"Content-Type": content_type},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Failed to upload {key} to {self.base_url}") from exc
        if resp.status_code not in (200, 201):
            raise StorageError(f"Upload of {key} failed with status {resp.status_code}: {resp.text}")
        logger.debug("Stored %s (%d bytes)", key, len(body))
        return self.public_url_for(key)

    def upload_epub(self, source_id: int, data: bytes) -> str:
        return self.upload(epub_key(source_id), data, EPUB_CONTENT_TYPE)

    def upload_cover(self, source_id: int, data: bytes, media_type: str) -> str:
        return self.upload(cover_key(source_id, media_type), data, media_type)

    def upload_chapter(self, source_id: int, chapter_id: str, html: str) -> str:
        return self.upload(chapter_key(source_id, chapter_id), html, HTML_CONTENT_TYPE)

    def upload_image(self, source_id: int, filename: str, data: bytes, media_type: str) -> str:
        return self.upload(image_key(source_id, filename), data, media_type)

    def close(self) -> None:
        self._session.close()
