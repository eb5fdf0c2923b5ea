from types import SimpleNamespace

import pytest
import requests

from folio import catalog as catalog_util

BOOK_PAYLOAD = {
    "id": 2701,
    "title": "Moby Dick; Or, The Whale",
    "authors": [{"name": "Melville, Herman", "birth_year": 1819}],
    "subjects": ["Whaling -- Fiction"],
    "languages": ["en"],
    "formats": {
        "text/html": "https://www.gutenberg.org/ebooks/2701.html.images",
        "application/epub+zip": "https://www.gutenberg.org/ebooks/2701.epub3.images",
    },
    "download_count": 12345,
}


def _response(status_code: int, payload=None, content: bytes = b"") -> SimpleNamespace:
    def json_body():
        if payload is None:
            raise ValueError("no json")
        return payload

    return SimpleNamespace(status_code=status_code, text=str(payload), content=content, json=json_body)


def test_fetch_book_parses_payload(monkeypatch) -> None:
    client = catalog_util.CatalogClient(base_url="https://catalog.test/")
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return _response(200, BOOK_PAYLOAD)

    monkeypatch.setattr(client._session, "get", fake_get)
    book = client.fetch_book(2701)
    assert calls == ["https://catalog.test/books/2701"]
    assert book.title == "Moby Dick; Or, The Whale"
    assert book.authors == ["Melville, Herman"]
    assert book.download_count == 12345
    assert catalog_util.get_epub_url(book) == "https://www.gutenberg.org/ebooks/2701.epub3.images"


def test_fetch_book_returns_none_when_missing(monkeypatch) -> None:
    client = catalog_util.CatalogClient()
    monkeypatch.setattr(client._session, "get", lambda url, timeout: _response(404, {"detail": "Not found."}))
    assert client.fetch_book(1) is None


def test_fetch_book_wraps_transport_errors(monkeypatch) -> None:
    client = catalog_util.CatalogClient()

    def boom(url, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client._session, "get", boom)
    with pytest.raises(catalog_util.CatalogError):
        client.fetch_book(1)


def test_get_epub_url_accepts_legacy_type_and_missing_format() -> None:
    legacy = catalog_util.CatalogBook(id=1, title="x", formats={"application/epub": "https://x/1.epub"})
    assert catalog_util.get_epub_url(legacy) == "https://x/1.epub"
    assert catalog_util.get_epub_url(catalog_util.CatalogBook(id=2, title="y")) is None


def test_download_retries_with_linear_backoff(monkeypatch) -> None:
    sleeps = []
    client = catalog_util.CatalogClient(attempts=3, backoff=3.0, sleep=sleeps.append)
    responses = [requests.Timeout("slow"), _response(503), _response(200, content=b"EPUB")]

    def fake_get(url, timeout, allow_redirects):
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(client._session, "get", fake_get)
    assert client.download("https://x/1.epub") == b"EPUB"
    assert sleeps == [3.0, 6.0]


def test_download_gives_up_after_last_attempt(monkeypatch) -> None:
    sleeps = []
    client = catalog_util.CatalogClient(attempts=3, backoff=3.0, sleep=sleeps.append)
    monkeypatch.setattr(
        client._session, "get", lambda url, timeout, allow_redirects: _response(500)
    )
    with pytest.raises(catalog_util.CatalogError, match="EPUB download failed after 3 attempts: status 500"):
        client.download("https://x/1.epub")
    assert sleeps == [3.0, 6.0]
