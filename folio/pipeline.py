"""Per-book processing: download, parse, clean, score and publish.

Text work happens in two passes. ``build_aggregate`` runs every chapter
through the transform chain and scores the book without touching the
network; ``finalize_chapter`` runs once upload URLs are known and points
image references at them.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .api import (
    BookRecord,
    BookStatus,
    ChapterRecord,
    JobRecord,
    JobStatus,
    JobUpdate,
    MetadataClient,
    utc_now,
)
from .catalog import CatalogBook, CatalogClient, CatalogError, get_epub_url
from .cleaner import CleanRules, clean_chapter_html
from .epub import BookMetadata, EpubContent, RawChapter, read_epub_content
from .foreign import tag_foreign_phrases
from .images import (
    InlineImage,
    build_image_map,
    extract_base64_images,
    extract_illustration_captions,
    image_filename,
    replace_base64_placeholders,
    rewrite_image_paths,
)
from .quality import (
    DEFAULT_WEIGHTS,
    NEAR_EMPTY_WORDS,
    BookStats,
    ChapterStats,
    QualityResult,
    QualityWeights,
    check_book_quality,
)
from .semantic import semanticize
from .spelling import modernize_spelling
from .storage import StorageClient
from .text import html_word_count
from .typography import typographize

logger = logging.getLogger(__name__)

SOURCE_URL_TEMPLATE = "https://www.gutenberg.org/ebooks/{id}"


class PipelineError(RuntimeError):
    """Raised when a book cannot be processed from its source."""


class BookNotFoundError(PipelineError):
    """Raised when the catalog has no record of the requested book."""


class MissingFormatError(PipelineError):
    """Raised when the catalog lists no EPUB download for a book."""


class DownloadError(PipelineError):
    """Raised when the EPUB cannot be downloaded after retries."""


@dataclass
class ProcessedChapter:
    order: int
    title: str
    href: str
    cleaned_html: str
    word_count: int
    quality_ok: bool
    captions: List[str] = field(default_factory=list)
    inline_images: List[InlineImage] = field(default_factory=list)


@dataclass(frozen=True)
class BookAggregate:
    metadata: BookMetadata
    chapters: List[ProcessedChapter]
    has_cover: bool
    word_count: int
    chapter_count: int
    quality: QualityResult


@dataclass(frozen=True)
class ProcessResult:
    source_id: int
    book_id: str
    status: BookStatus
    quality: QualityResult
    chapter_count: int
    word_count: int


def run_text_pipeline(html: str, rules: Optional[CleanRules] = None) -> str:
    """Clean, typeset, modernize and tag one chapter body."""
    html = clean_chapter_html(html, rules=rules)
    html = typographize(html)
    html = modernize_spelling(html)
    html = semanticize(html)
    return tag_foreign_phrases(html)


def process_chapter(raw: RawChapter, rules: Optional[CleanRules] = None) -> ProcessedChapter:
    # Captions live in the bracketed markers the cleaner removes.
    captions = extract_illustration_captions(raw.html_content)
    html, inline_images = extract_base64_images(raw.html_content, prefix=f"ch{raw.order}")
    cleaned = run_text_pipeline(html, rules=rules)
    words = html_word_count(cleaned)
    return ProcessedChapter(
        order=raw.order,
        title=raw.title,
        href=raw.href,
        cleaned_html=cleaned,
        word_count=words,
        quality_ok=words >= NEAR_EMPTY_WORDS,
        captions=captions,
        inline_images=inline_images,
    )


def build_aggregate(
    content: EpubContent,
    rules: Optional[CleanRules] = None,
    weights: Optional[QualityWeights] = None,
) -> BookAggregate:
    chapters = [process_chapter(raw, rules=rules) for raw in content.chapters]
    word_count = sum(chapter.word_count for chapter in chapters)
    has_cover = content.cover is not None
    quality = check_book_quality(
        BookStats(title=content.metadata.title, word_count=word_count, has_cover=has_cover),
        [
            ChapterStats(title=chapter.title, word_count=chapter.word_count, html=chapter.cleaned_html)
            for chapter in chapters
        ],
        weights=weights or DEFAULT_WEIGHTS,
    )
    return BookAggregate(
        metadata=content.metadata,
        chapters=chapters,
        has_cover=has_cover,
        word_count=word_count,
        chapter_count=len(chapters),
        quality=quality,
    )


def finalize_chapter(
    chapter: ProcessedChapter,
    image_map: Mapping[str, str],
    inline_urls: Mapping[int, str],
) -> str:
    html = replace_base64_placeholders(chapter.cleaned_html, inline_urls)
    return rewrite_image_paths(html, image_map, chapter.captions)


class JobReporter:
    """Report job transitions without letting reporting failures stop the run."""

    def __init__(self, api: MetadataClient, job: Optional[JobRecord] = None) -> None:
        self.api = api
        self.job = job

    def _send(self, update: JobUpdate) -> None:
        if self.job is None:
            return
        try:
            self.api.update_job(self.job.id, update)
        except Exception as exc:
            logger.warning("Failed to report job %s status: %s", self.job.id, exc)

    def transition(self, status: JobStatus, detail: Optional[str] = None) -> None:
        logger.debug("Job %s -> %s", self.job.id if self.job else "-", status.value)
        update = JobUpdate(status=status, step_detail=detail)
        if status is JobStatus.DOWNLOADING:
            update.started_at = utc_now()
        elif status is JobStatus.DONE:
            update.completed_at = utc_now()
        self._send(update)

    def fail(self, message: str) -> None:
        attempts = (self.job.attempts if self.job else 0) + 1
        self._send(
            JobUpdate(
                status=JobStatus.FAILED,
                error_message=message,
                attempts=attempts,
                completed_at=utc_now(),
            )
        )


class BookProcessor:
    def __init__(
        self,
        catalog: CatalogClient,
        storage: StorageClient,
        api: MetadataClient,
        rules: Optional[CleanRules] = None,
        weights: Optional[QualityWeights] = None,
    ) -> None:
        self.catalog = catalog
        self.storage = storage
        self.api = api
        self.rules = rules
        self.weights = weights

    def process_job(self, job: JobRecord) -> ProcessResult:
        return self.process(job.gutenberg_id, job=job)

    def process(self, source_id: int, job: Optional[JobRecord] = None) -> ProcessResult:
        reporter = JobReporter(self.api, job)
        tmp_path: Optional[Path] = None
        logger.info("Processing book %s", source_id)
        try:
            reporter.transition(JobStatus.DOWNLOADING)
            book, data = self._download(source_id)

            reporter.transition(JobStatus.PARSING)
            fd, name = tempfile.mkstemp(prefix=f"folio-{source_id}-", suffix=".epub")
            tmp_path = Path(name)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            content = read_epub_content(tmp_path)
            logger.info("Parsed %d chapters from %s", len(content.chapters), content.metadata.title)

            reporter.transition(JobStatus.CLEANING, detail=f"{len(content.chapters)} chapters")
            aggregate = build_aggregate(content, rules=self.rules, weights=self.weights)

            reporter.transition(JobStatus.UPLOADING)
            result = self._publish(source_id, book, data, content, aggregate)

            reporter.transition(JobStatus.DONE)
            logger.info(
                "Book %s stored as %s (score %d, %s)",
                source_id,
                result.book_id,
                result.quality.score,
                result.status.value,
            )
            return result
        except Exception as exc:
            reporter.fail(str(exc))
            raise
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

    def _download(self, source_id: int) -> tuple[CatalogBook, bytes]:
        book = self.catalog.fetch_book(source_id)
        if book is None:
            raise BookNotFoundError(f"Book not found in catalog: {source_id}")
        url = get_epub_url(book)
        if not url:
            raise MissingFormatError(f"No EPUB format available for: {book.title}")
        try:
            data = self.catalog.download(url)
        except CatalogError as exc:
            raise DownloadError(str(exc)) from exc
        return book, data

    def _publish(
        self,
        source_id: int,
        book: CatalogBook,
        data: bytes,
        content: EpubContent,
        aggregate: BookAggregate,
    ) -> ProcessResult:
        epub_url = self.storage.upload_epub(source_id, data)
        cover_url = None
        if content.cover is not None:
            cover_url = self.storage.upload_cover(
                source_id, content.cover.data, content.cover.media_type
            )

        uploaded = []
        for image in content.images:
            url = self.storage.upload_image(
                source_id, image_filename(image.href), image.data, image.media_type
            )
            uploaded.append((image.href, url))
        image_map = build_image_map(uploaded)

        records: List[ChapterRecord] = []
        for chapter in aggregate.chapters:
            inline_urls: Dict[int, str] = {}
            for image in chapter.inline_images:
                inline_urls[image.index] = self.storage.upload_image(
                    source_id, image.filename, image.data, image.media_type
                )
            html = finalize_chapter(chapter, image_map, inline_urls)
            chapter_id = str(uuid.uuid4())
            records.append(
                ChapterRecord(
                    id=chapter_id,
                    order_num=chapter.order,
                    title=chapter.title,
                    content_url=self.storage.upload_chapter(source_id, chapter_id, html),
                    word_count=chapter.word_count,
                    quality_ok=chapter.quality_ok,
                )
            )

        metadata = aggregate.metadata
        status = BookStatus.READY if aggregate.quality.passed else BookStatus.PENDING
        book_id = str(uuid.uuid4())
        created = self.api.create_book(
            BookRecord(
                id=book_id,
                gutenberg_id=source_id,
                title=book.title or metadata.title,
                author=", ".join(book.authors) or metadata.author,
                language=metadata.language,
                subjects=book.subjects or metadata.subjects,
                description=metadata.description or None,
                cover_url=cover_url,
                epub_url=epub_url,
                source_url=SOURCE_URL_TEMPLATE.format(id=source_id),
                status=status,
                quality_score=aggregate.quality.score,
                quality_issues=aggregate.quality.issues,
                chapter_count=aggregate.chapter_count,
                word_count=aggregate.word_count,
            )
        )
        book_id = created.id or book_id
        if records:
            self.api.create_chapters(book_id, records)

        return ProcessResult(
            source_id=source_id,
            book_id=book_id,
            status=status,
            quality=aggregate.quality,
            chapter_count=aggregate.chapter_count,
            word_count=aggregate.word_count,
        )
