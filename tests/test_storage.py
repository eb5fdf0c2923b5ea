from types import SimpleNamespace

import pytest
import requests

from folio import storage as storage_util


def _capture(monkeypatch, client, status_code: int = 201) -> list:
    calls = []

    def fake_put(url, data, headers, timeout):
        calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        return SimpleNamespace(status_code=status_code, text="denied")

    monkeypatch.setattr(client._session, "put", fake_put)
    return calls


def test_upload_returns_public_url(monkeypatch) -> None:
    client = storage_util.StorageClient(
        base_url="https://api.test", api_key="secret", public_url="https://cdn.test/"
    )
    calls = _capture(monkeypatch, client)
    url = client.upload_chapter(2701, "abc", "<p>café</p>")
    assert url == "https://cdn.test/books/2701/chapters/abc.html"
    assert calls[0]["url"] == "https://api.test/internal/r2/books/2701/chapters/abc.html"
    assert calls[0]["data"] == "<p>café</p>".encode("utf-8")
    assert calls[0]["headers"] == {"Content-Type": "text/html; charset=utf-8"}
    assert client._session.headers["X-Internal-Key"] == "secret"


def test_upload_without_public_url_returns_key(monkeypatch) -> None:
    client = storage_util.StorageClient(base_url="https://api.test")
    _capture(monkeypatch, client)
    assert client.upload_epub(11, b"zip") == "books/11/original.epub"


def test_key_scheme() -> None:
    assert storage_util.cover_key(5, "image/png") == "books/5/cover.png"
    assert storage_util.cover_key(5, "image/jpeg") == "books/5/cover.jpg"
    assert storage_util.image_key(5, "a.png") == "books/5/images/a.png"


def test_upload_failures_raise_storage_error(monkeypatch) -> None:
    client = storage_util.StorageClient(base_url="https://api.test")
    _capture(monkeypatch, client, status_code=403)
    with pytest.raises(storage_util.StorageError, match="status 403"):
        client.upload_image(5, "a.png", b"png", "image/png")

    def boom(url, data, headers, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client._session, "put", boom)
    with pytest.raises(storage_util.StorageError):
        client.upload_cover(5, b"jpg", "image/jpeg")
