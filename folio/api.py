from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .config import DEFAULT_API_URL

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Raised when the metadata API rejects or fails a request."""


class ApiUnavailableError(ApiError, ConnectionError):
    """Raised when the metadata API cannot be reached."""


class BookStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


class JobStatus(str, Enum):
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PARSING = "parsing"
    CLEANING = "cleaning"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BookRecord(_WireModel):
    id: Optional[str] = None
    gutenberg_id: int
    title: str
    author: Optional[str] = None
    language: str = "en"
    subjects: List[str] = []
    description: Optional[str] = None
    cover_url: Optional[str] = None
    epub_url: Optional[str] = None
    source_url: Optional[str] = None
    status: BookStatus = BookStatus.PENDING
    quality_score: int = 0
    quality_issues: List[str] = []
    chapter_count: int = 0
    word_count: int = 0

    def to_wire(self) -> Dict[str, Any]:
        # The store keeps list columns as JSON text.
        payload = super().to_wire()
        payload["subjects"] = json.dumps(self.subjects)
        payload["qualityIssues"] = json.dumps(self.quality_issues)
        return payload


class ChapterRecord(_WireModel):
    id: str
    order_num: int
    title: str
    content_url: str
    word_count: int = 0
    quality_ok: bool = True

    def to_wire(self) -> Dict[str, Any]:
        payload = super().to_wire()
        payload["qualityOk"] = 1 if self.quality_ok else 0
        return payload


class JobRecord(_WireModel):
    id: str
    gutenberg_id: int
    status: JobStatus = JobStatus.QUEUED
    priority: int = 0
    attempts: int = 0
    step_detail: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class JobUpdate(_WireModel):
    status: Optional[JobStatus] = None
    step_detail: Optional[str] = None
    attempts: Optional[int] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


def _parse_json_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    return []


def parse_book(payload: Dict[str, Any]) -> BookRecord:
    data = dict(payload)
    data["subjects"] = _parse_json_list(data.get("subjects"))
    data["qualityIssues"] = _parse_json_list(data.get("qualityIssues"))
    for key in ("qualityScore", "chapterCount", "wordCount"):
        if data.get(key) is None:
            data.pop(key, None)
    return BookRecord.model_validate(data)


class MetadataClient:
    """Client for the internal endpoints of the metadata API."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        api_key: str = "",
        admin_token: str = "",
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.admin_token = admin_token
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers["X-Internal-Key"] = api_key

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiUnavailableError(f"Failed to contact metadata API at {self.base_url}") from exc
        if resp.status_code not in (200, 201):
            raise ApiError(f"{path} failed with status {resp.status_code}: {resp.text}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ApiError(f"{path} returned invalid JSON") from exc

    def create_book(self, book: BookRecord) -> BookRecord:
        data = self._request("POST", "/internal/books", payload=book.to_wire())
        if not isinstance(data, dict):
            raise ApiError("/internal/books returned an unexpected payload")
        return parse_book(data)

    def update_book(self, book_id: str, **changes: Any) -> None:
        payload = {to_camel(key): _plain(value) for key, value in changes.items()}
        self._request("PUT", f"/internal/books/{book_id}", payload=payload)

    def create_chapters(self, book_id: str, chapters: Sequence[ChapterRecord]) -> int:
        payload = {"chapters": [chapter.to_wire() for chapter in chapters]}
        data = self._request("POST", f"/internal/books/{book_id}/chapters", payload=payload)
        if isinstance(data, dict) and "created" in data:
            return int(data["created"])
        return len(chapters)

    def pull_next_job(self) -> Optional[JobRecord]:
        data = self._request(
            "GET", "/internal/jobs", params={"status": JobStatus.QUEUED.value, "limit": 1}
        )
        if isinstance(data, dict):
            data = data.get("jobs", [data] if "id" in data else [])
        if not data:
            return None
        return JobRecord.model_validate(data[0])

    def update_job(self, job_id: str, update: JobUpdate) -> None:
        self._request("PUT", f"/internal/jobs/{job_id}", payload=update.to_wire())

    def create_job(self, source_id: int, priority: int = 0) -> str:
        data = self._request(
            "POST", "/internal/jobs", payload={"gutenbergId": source_id, "priority": priority}
        )
        if not isinstance(data, dict) or not data.get("jobId"):
            raise ApiError("/internal/jobs returned no job id")
        return str(data["jobId"])

    def existing_source_ids(self, source_ids: Sequence[int]) -> List[int]:
        """Return the subset of ``source_ids`` that already have a book record."""
        if not source_ids:
            return []
        params = {"gutenberg_ids": ",".join(str(item) for item in source_ids)}
        data = self._request("GET", "/internal/books/exists", params=params)
        if not isinstance(data, dict):
            return []
        return [int(item) for item in data.get("existingIds") or []]

    def list_books(self, status: Optional[str] = None, limit: int = 100) -> List[BookRecord]:
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        data = self._request("GET", "/internal/books", params=params)
        if isinstance(data, dict):
            data = data.get("books", [])
        return [parse_book(item) for item in data or []]

    def list_jobs(self, status: Optional[str] = None, limit: int = 100) -> List[JobRecord]:
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        data = self._request("GET", "/internal/jobs", params=params)
        if isinstance(data, dict):
            data = data.get("jobs", [])
        return [JobRecord.model_validate(item) for item in data or []]

    def stats(self) -> Dict[str, Any]:
        if self.admin_token:
            headers = {"Authorization": f"Bearer {self.admin_token}"}
            data = self._request("GET", "/api/admin/stats", headers=headers)
        else:
            data = self._request("GET", "/internal/stats")
        if not isinstance(data, dict):
            raise ApiError("stats returned an unexpected payload")
        return data

    def close(self) -> None:
        self._session.close()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return value
