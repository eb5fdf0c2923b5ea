from __future__ import annotations

import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from posixpath import dirname as posix_dirname
from posixpath import join as posix_join
from posixpath import normpath as posix_normpath
from typing import Iterable, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup
from ebooklib import ITEM_COVER, ITEM_DOCUMENT, ITEM_IMAGE, epub

from .images import IMAGE_URL_PREFIX
from .text import html_word_count

logger = logging.getLogger(__name__)

MIN_CHAPTER_CHARS = 100

SKIP_KEYWORDS = (
    "colophon",
    "imprint",
    "license",
    "copyright",
    "uncopyright",
    "endnotes",
    "cover",
    "titlepage",
    "cover image",
    "book cover",
    "front cover",
)
SKIP_HREF_KEYWORDS = ("cover", "titlepage")


def _keyword_re(keywords: Iterable[str]) -> re.Pattern:
    # Letters on either side mean a different word ("Discovery").
    alternation = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"(?<![a-z])(?:{alternation})(?![a-z])")


_SKIP_TITLE_RE = _keyword_re(SKIP_KEYWORDS)
_SKIP_HREF_RE = _keyword_re(SKIP_HREF_KEYWORDS)


class EpubError(RuntimeError):
    """Raised when a file cannot be read as an EPUB container."""


@dataclass(frozen=True)
class TocEntry:
    title: str
    href: str


@dataclass(frozen=True)
class BookMetadata:
    title: str = "Unknown"
    author: str = "Unknown"
    language: str = "en"
    subjects: List[str] = field(default_factory=list)
    description: str = ""
    cover_image_id: Optional[str] = None


@dataclass(frozen=True)
class CoverImage:
    data: bytes
    media_type: str
    href: str = ""


@dataclass(frozen=True)
class EpubImage:
    id: str
    href: str
    media_type: str
    data: bytes


@dataclass(frozen=True)
class RawChapter:
    order: int
    title: str
    href: str
    html_content: str
    word_count: int


@dataclass(frozen=True)
class EpubContent:
    metadata: BookMetadata
    chapters: List[RawChapter]
    cover: Optional[CoverImage]
    images: List[EpubImage]


def read_epub(path: Path) -> epub.EpubBook:
    try:
        return epub.read_epub(str(path))
    except (epub.EpubException, zipfile.BadZipFile, KeyError) as exc:
        raise EpubError(f"Failed to read EPUB {path}: {exc}") from exc


def _first_dc_meta(book: epub.EpubBook, name: str) -> str:
    items = book.get_metadata("DC", name)
    if not items:
        return ""
    value, _attrs = items[0]
    return (value or "").strip()


def _all_dc_meta(book: epub.EpubBook, name: str) -> List[str]:
    values: List[str] = []
    for value, _attrs in book.get_metadata("DC", name):
        if value and value.strip():
            values.append(value.strip())
    return values


def _item_name(item: object) -> str:
    get_name = getattr(item, "get_name", None)
    if callable(get_name):
        return get_name() or ""
    return getattr(item, "file_name", "") or ""


def _item_title(item: object) -> str:
    title = getattr(item, "title", "")
    if title:
        return title
    get_title = getattr(item, "get_title", None)
    if callable(get_title):
        value = get_title()
        if value:
            return value
    return ""


def _item_id(item: object) -> str:
    get_id = getattr(item, "get_id", None)
    if callable(get_id):
        value = get_id()
        if value:
            return value
    return getattr(item, "id", "") or ""


def _cover_meta_id(book: epub.EpubBook) -> Optional[str]:
    for _value, attrs in book.get_metadata("OPF", "cover"):
        if attrs and attrs.get("content"):
            return attrs["content"]
    for _value, attrs in book.get_metadata("OPF", "meta"):
        if not attrs:
            continue
        if str(attrs.get("name") or "").lower() == "cover" and attrs.get("content"):
            return attrs["content"]
    return None


def _find_cover_item(book: epub.EpubBook) -> object | None:
    cover_id = _cover_meta_id(book)
    if cover_id:
        item = book.get_item_with_id(cover_id)
        if item is not None and item.get_type() in (ITEM_IMAGE, ITEM_COVER):
            return item

    for item in book.get_items():
        props = getattr(item, "properties", []) or []
        if isinstance(props, str):
            props = [props]
        if any("cover-image" in prop for prop in props):
            return item

    for item in book.get_items_of_type(ITEM_COVER):
        return item

    for item in book.get_items_of_type(ITEM_IMAGE):
        name = _item_name(item).lower()
        item_id = _item_id(item).lower()
        if "cover" in name or "cover" in item_id:
            return item
    return None


def extract_metadata(book: epub.EpubBook) -> BookMetadata:
    return BookMetadata(
        title=_first_dc_meta(book, "title") or "Unknown",
        author=_first_dc_meta(book, "creator") or "Unknown",
        language=_first_dc_meta(book, "language") or "en",
        subjects=_all_dc_meta(book, "subject"),
        description=_first_dc_meta(book, "description"),
        cover_image_id=_cover_meta_id(book),
    )


def extract_cover_image(book: epub.EpubBook) -> Optional[CoverImage]:
    cover_item = _find_cover_item(book)
    if cover_item is None:
        return None
    data = cover_item.get_content()
    if not data:
        return None
    return CoverImage(
        data=data,
        media_type=getattr(cover_item, "media_type", "") or "image/jpeg",
        href=_item_name(cover_item),
    )


def extract_images(book: epub.EpubBook) -> List[EpubImage]:
    images: List[EpubImage] = []
    for item in book.get_items():
        if item.get_type() not in (ITEM_IMAGE, ITEM_COVER):
            continue
        data = item.get_content()
        if not data:
            continue
        images.append(
            EpubImage(
                id=_item_id(item),
                href=_item_name(item),
                media_type=getattr(item, "media_type", "") or "application/octet-stream",
                data=data,
            )
        )
    return images


def normalize_href(href: str) -> str:
    href = (href or "").strip()
    if not href:
        return ""
    href = href.split("#", 1)[0]
    # Some EPUBs percent-encode filenames in TOC entries.
    return unquote(href)


def flatten_toc(toc: Iterable) -> List[TocEntry]:
    entries: List[TocEntry] = []

    def walk(nodes: Iterable) -> None:
        for node in nodes:
            if isinstance(node, epub.Link):
                if node.href:
                    entries.append(TocEntry(title=node.title or "", href=node.href))
            elif isinstance(node, epub.Section):
                if node.href:
                    entries.append(TocEntry(title=node.title or "", href=node.href))
                subitems = getattr(node, "subitems", None)
                if subitems:
                    walk(subitems)
            elif isinstance(node, (list, tuple)):
                walk(node)

    walk(toc)
    return entries


def build_spine_entries(book: epub.EpubBook) -> List[TocEntry]:
    entries: List[TocEntry] = []
    for idref, _linear in book.spine:
        item = book.get_item_with_id(idref)
        if item is None or item.get_type() != ITEM_DOCUMENT:
            continue
        entries.append(TocEntry(title=_item_title(item), href=_item_name(item)))
    return entries


def is_skippable(title: str, href: str = "") -> bool:
    lowered = (title or "").lower()
    lowered_href = (href or "").lower()
    if _SKIP_TITLE_RE.search(lowered):
        return True
    return _SKIP_HREF_RE.search(lowered_href) is not None


def _resolve_relative_href(base_href: str, target_href: str) -> str:
    target = normalize_href(target_href)
    if not target:
        return ""
    if "://" in target or target.startswith("data:"):
        return ""
    if target.startswith("/"):
        return target.lstrip("/")
    base = normalize_href(base_href)
    base_dir = posix_dirname(base) if base else ""
    if not base_dir:
        return posix_normpath(target)
    return posix_normpath(posix_join(base_dir, target))


def _parse_html_soup(html: bytes | str) -> BeautifulSoup:
    if isinstance(html, bytes):
        head = html.lstrip()[:512].lower()
        parser = (
            "lxml-xml"
            if (head.startswith(b"<?xml") or b"xmlns=" in head)
            else "lxml"
        )
    else:
        head = str(html).lstrip()[:512].lower()
        parser = "lxml-xml" if (head.startswith("<?xml") or "xmlns=" in head) else "lxml"
    return BeautifulSoup(html, parser)


def _find_document(book: epub.EpubBook, href: str) -> object | None:
    item = book.get_item_with_href(href)
    if item is not None and item.get_type() == ITEM_DOCUMENT:
        return item
    for candidate in book.get_items_of_type(ITEM_DOCUMENT):
        name = normalize_href(_item_name(candidate))
        if name == href or name.endswith("/" + href):
            return candidate
    return None


def chapter_html(content: bytes | str, source_href: str) -> str:
    """Return the body markup of a chapter document.

    Image references are rewritten to ``/images/<manifest href>`` so they can
    later be matched against uploaded image URLs.
    """
    soup = _parse_html_soup(content)
    for img in soup.find_all("img"):
        src = img.get("src")
        resolved = _resolve_relative_href(source_href, str(src or ""))
        if resolved:
            img["src"] = f"{IMAGE_URL_PREFIX}{resolved}"
    for image in soup.find_all("image"):
        for attr in ("xlink:href", "href"):
            value = image.get(attr)
            if value is None:
                continue
            resolved = _resolve_relative_href(source_href, str(value))
            if resolved:
                image[attr] = f"{IMAGE_URL_PREFIX}{resolved}"
    body = soup.find("body")
    if body is None:
        return str(soup).strip()
    return body.decode_contents().strip()


def extract_chapters(book: epub.EpubBook) -> List[RawChapter]:
    """Collect content chapters in reading order, TOC first, spine as fallback."""
    entries = flatten_toc(book.toc or [])
    chapters = _chapters_from_entries(book, entries) if entries else []
    if not chapters:
        chapters = _chapters_from_entries(book, build_spine_entries(book))
    return chapters


def _chapters_from_entries(book: epub.EpubBook, entries: List[TocEntry]) -> List[RawChapter]:
    chapters: List[RawChapter] = []
    seen: set[str] = set()
    for idx, entry in enumerate(entries, start=1):
        title = (entry.title or "").strip() or f"Chapter {idx}"
        if is_skippable(title, entry.href):
            continue
        base_href = normalize_href(entry.href)
        if not base_href or base_href in seen:
            continue
        seen.add(base_href)
        item = _find_document(book, base_href)
        if item is None:
            logger.debug("No document for TOC entry %s", entry.href)
            continue
        content = chapter_html(item.get_content(), _item_name(item))
        if len(content) < MIN_CHAPTER_CHARS:
            continue
        chapters.append(
            RawChapter(
                order=len(chapters) + 1,
                title=title,
                href=entry.href,
                html_content=content,
                word_count=html_word_count(content),
            )
        )
    return chapters


def read_epub_content(path: Path) -> EpubContent:
    book = read_epub(path)
    return EpubContent(
        metadata=extract_metadata(book),
        chapters=extract_chapters(book),
        cover=extract_cover_image(book),
        images=extract_images(book),
    )
