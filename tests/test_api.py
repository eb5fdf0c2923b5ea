import json
from types import SimpleNamespace

import pytest
import requests

from folio import api as api_util
from folio.api import BookRecord, BookStatus, ChapterRecord, JobStatus, JobUpdate


class FakeSession:
    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.calls = []
        self.headers = {}

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "json": json, "params": params, "headers": headers}
        )
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        pass


def _response(status_code: int, payload=None) -> SimpleNamespace:
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return SimpleNamespace(
        status_code=status_code,
        text=body.decode("utf-8"),
        content=body,
        json=lambda: json.loads(body),
    )


def _client(responses) -> api_util.MetadataClient:
    client = api_util.MetadataClient(base_url="https://api.test", api_key="k")
    client._session = FakeSession(responses)
    return client


def test_book_record_serializes_camel_case_with_json_lists() -> None:
    record = BookRecord(
        id="b1",
        gutenberg_id=2701,
        title="Moby Dick",
        subjects=["Whaling"],
        status=BookStatus.READY,
        quality_score=90,
        quality_issues=["Low word count: 1800"],
    )
    wire = record.to_wire()
    assert wire["gutenbergId"] == 2701
    assert wire["status"] == "ready"
    assert wire["qualityScore"] == 90
    assert wire["subjects"] == '["Whaling"]'
    assert wire["qualityIssues"] == '["Low word count: 1800"]'
    assert "coverUrl" not in wire


def test_create_book_posts_and_parses_response() -> None:
    created = {
        "id": "b1",
        "gutenbergId": 2701,
        "title": "Moby Dick",
        "subjects": '["Whaling"]',
        "qualityIssues": None,
        "qualityScore": None,
        "status": "pending",
        "createdAt": "2024-01-01",
    }
    client = _client([_response(201, created)])
    book = client.create_book(BookRecord(id="b1", gutenberg_id=2701, title="Moby Dick"))
    call = client._session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://api.test/internal/books"
    assert call["json"]["title"] == "Moby Dick"
    assert book.id == "b1"
    assert book.subjects == ["Whaling"]
    assert book.quality_issues == []
    assert book.status is BookStatus.PENDING


def test_create_chapters_sends_integer_quality_flag() -> None:
    client = _client([_response(201, {"created": 2})])
    chapters = [
        ChapterRecord(id="c1", order_num=1, title="One", content_url="u1", word_count=600),
        ChapterRecord(id="c2", order_num=2, title="Two", content_url="u2", word_count=10, quality_ok=False),
    ]
    assert client.create_chapters("b1", chapters) == 2
    body = client._session.calls[0]["json"]
    assert body["chapters"][0] == {
        "id": "c1",
        "orderNum": 1,
        "title": "One",
        "contentUrl": "u1",
        "wordCount": 600,
        "qualityOk": 1,
    }
    assert body["chapters"][1]["qualityOk"] == 0


def test_pull_next_job_handles_list_and_empty_responses() -> None:
    job = {"id": "j1", "gutenbergId": 11, "status": "queued", "priority": 5, "attempts": 1}
    client = _client([_response(200, [job]), _response(200, [])])
    pulled = client.pull_next_job()
    assert pulled.id == "j1"
    assert pulled.gutenberg_id == 11
    assert pulled.status is JobStatus.QUEUED
    assert client._session.calls[0]["params"] == {"status": "queued", "limit": 1}
    assert client.pull_next_job() is None


def test_update_job_sends_only_set_fields() -> None:
    client = _client([_response(200, {"message": "Updated"})])
    client.update_job("j1", JobUpdate(status=JobStatus.FAILED, error_message="boom", attempts=2))
    call = client._session.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "https://api.test/internal/jobs/j1"
    assert call["json"] == {"status": "failed", "errorMessage": "boom", "attempts": 2}


def test_update_book_converts_names_and_enums() -> None:
    client = _client([_response(200, {"message": "Updated"})])
    client.update_book("b1", status=BookStatus.APPROVED, quality_issues=["x"])
    assert client._session.calls[0]["json"] == {"status": "approved", "qualityIssues": '["x"]'}


def test_create_job_and_existing_ids() -> None:
    client = _client([_response(201, {"jobId": "j9"}), _response(200, {"existingIds": [11]})])
    assert client.create_job(12, priority=3) == "j9"
    assert client._session.calls[0]["json"] == {"gutenbergId": 12, "priority": 3}
    assert client.existing_source_ids([11, 12]) == [11]
    assert client._session.calls[1]["params"] == {"gutenberg_ids": "11,12"}


def test_stats_uses_admin_token_when_configured() -> None:
    client = _client([_response(200, {"total_books": 3})])
    client.admin_token = "t"
    assert client.stats() == {"total_books": 3}
    call = client._session.calls[0]
    assert call["url"] == "https://api.test/api/admin/stats"
    assert call["headers"] == {"Authorization": "Bearer t"}


def test_errors_are_wrapped() -> None:
    client = _client([_response(500, {"error": "db down"}), requests.ConnectionError("refused")])
    with pytest.raises(api_util.ApiError, match="status 500"):
        client.list_jobs(status="failed")
    with pytest.raises(api_util.ApiUnavailableError):
        client.list_books()
