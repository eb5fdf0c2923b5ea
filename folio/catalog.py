from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import requests

from .config import DEFAULT_CATALOG_URL

logger = logging.getLogger(__name__)

EPUB_FORMATS = ("application/epub+zip", "application/epub")


class CatalogError(RuntimeError):
    """Raised when the source catalog or a download host fails."""


@dataclass(frozen=True)
class CatalogBook:
    id: int
    title: str
    authors: List[str] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    formats: Dict[str, str] = field(default_factory=dict)
    download_count: int = 0

    @classmethod
    def from_payload(cls, payload: dict) -> "CatalogBook":
        authors = []
        for author in payload.get("authors") or []:
            name = author.get("name") if isinstance(author, dict) else author
            if name:
                authors.append(str(name))
        return cls(
            id=int(payload.get("id") or 0),
            title=str(payload.get("title") or ""),
            authors=authors,
            subjects=[str(item) for item in payload.get("subjects") or []],
            languages=[str(item) for item in payload.get("languages") or []],
            formats={str(k): str(v) for k, v in (payload.get("formats") or {}).items()},
            download_count=int(payload.get("download_count") or 0),
        )


def get_epub_url(book: CatalogBook) -> Optional[str]:
    for media_type in EPUB_FORMATS:
        url = book.formats.get(media_type)
        if url:
            return url
    return None


class CatalogClient:
    def __init__(
        self,
        base_url: str = DEFAULT_CATALOG_URL,
        timeout: float = 15.0,
        download_timeout: float = 120.0,
        attempts: int = 3,
        backoff: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.download_timeout = download_timeout
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self._sleep = sleep
        self._session = requests.Session()

    def fetch_book(self, book_id: int) -> Optional[CatalogBook]:
        """Return catalog metadata for ``book_id``, or None if it does not exist."""
        try:
            resp = self._session.get(f"{self.base_url}/books/{book_id}", timeout=self.timeout)
        except requests.RequestException as exc:
            raise CatalogError(f"Failed to contact catalog at {self.base_url}") from exc
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise CatalogError(
                f"/books/{book_id} failed with status {resp.status_code}: {resp.text}"
            )
        try:
            payload = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise CatalogError(f"Catalog returned invalid JSON for book {book_id}") from exc
        if not isinstance(payload, dict):
            raise CatalogError(f"Catalog returned unexpected payload for book {book_id}")
        return CatalogBook.from_payload(payload)

    def download(self, url: str) -> bytes:
        """Fetch ``url`` with linear backoff between failed attempts."""
        last_error = ""
        for attempt in range(1, self.attempts + 1):
            try:
                resp = self._session.get(url, timeout=self.download_timeout, allow_redirects=True)
                if resp.status_code == 200:
                    return resp.content
                last_error = f"status {resp.status_code}"
            except requests.RequestException as exc:
                last_error = str(exc) or exc.__class__.__name__
            logger.warning("Download attempt %d/%d failed: %s", attempt, self.attempts, last_error)
            if attempt < self.attempts:
                self._sleep(self.backoff * attempt)
        raise CatalogError(f"EPUB download failed after {self.attempts} attempts: {last_error}")

    def close(self) -> None:
        self._session.close()
