"""Publishability score for a processed book.

The score starts at 100 and each triggered signal subtracts its weight; the
result is clamped to 0..100 and passes at 60 or more. Issues are reported in
the order the signals are evaluated.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

PASS_THRESHOLD = 60
NEAR_EMPTY_WORDS = 50
VERY_LOW_WORDS = 1000
LOW_WORDS = 5000
MIN_CHAPTERS = 2
TRUNCATION_MIN_CHAPTERS = 3
TRUNCATION_RATIO = 0.3
TRUNCATION_MAX_WORDS = 200
SEQUENCE_MIN_NUMBERED = 3
ROMAN_CHAPTER_MAX = 20

_MOJIBAKE_PATTERNS = (
    re.compile("\ufffd"),
    re.compile("\u00c3[\u0080-\u00bf]"),
    re.compile("\u00e2\u20ac"),
    re.compile("\u00c2[\u0080-\u00bf ]"),
    re.compile("[\u0080-\u009f]"),
)
_ARABIC_CHAPTER_RE = re.compile(r"\bchapter\s+(\d+)\b", re.IGNORECASE)
_ARABIC_CH_RE = re.compile(r"\bch\.?\s+(\d+)\b", re.IGNORECASE)
_ROMAN_CHAPTER_RE = re.compile(r"\bchapter\s+(X{0,2}(?:IX|IV|V?I{0,3}))\b", re.IGNORECASE)
_ROMAN_VALUES = {"I": 1, "V": 5, "X": 10}


@dataclass(frozen=True)
class QualityWeights:
    no_chapters: int = 50
    few_chapters: int = 15
    very_low_word_count: int = 30
    low_word_count: int = 10
    near_empty_chapter: int = 5
    no_cover: int = 10
    encoding_issues: int = 15
    duplicate_titles: int = 10
    truncated_last_chapter: int = 10
    sequence_gaps: int = 5


DEFAULT_WEIGHTS = QualityWeights()


@dataclass(frozen=True)
class BookStats:
    title: str
    word_count: int
    has_cover: bool


@dataclass(frozen=True)
class ChapterStats:
    title: str
    word_count: int
    html: str = ""


@dataclass(frozen=True)
class QualityResult:
    score: int
    issues: List[str]
    passed: bool

    def to_dict(self) -> Dict[str, object]:
        return {"score": self.score, "issues": list(self.issues), "pass": self.passed}


def load_weights(path: Optional[Path] = None) -> QualityWeights:
    if path is None:
        return DEFAULT_WEIGHTS
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Quality weights must be a JSON object: {path}")
    known = {field.name for field in fields(QualityWeights)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown quality weight(s) in {path}: {', '.join(unknown)}")
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Quality weight '{key}' must be an integer.")
    return replace(DEFAULT_WEIGHTS, **data)


def weights_dict(weights: QualityWeights) -> Dict[str, int]:
    return asdict(weights)


def has_mojibake(text: str) -> bool:
    if not text:
        return False
    return any(pattern.search(text) for pattern in _MOJIBAKE_PATTERNS)


def _roman_to_int(numeral: str) -> int:
    total = 0
    prev = 0
    for char in reversed(numeral.upper()):
        value = _ROMAN_VALUES[char]
        if value < prev:
            total -= value
        else:
            total += value
            prev = value
    return total


def extract_chapter_number(title: str) -> Optional[int]:
    """Return the sequence number in titles like "Chapter 3" or "Chapter XIV"."""
    if not title:
        return None
    match = _ARABIC_CHAPTER_RE.search(title) or _ARABIC_CH_RE.search(title)
    if match:
        return int(match.group(1))
    match = _ROMAN_CHAPTER_RE.search(title)
    if match and match.group(1):
        value = _roman_to_int(match.group(1))
        return value if value <= ROMAN_CHAPTER_MAX else None
    return None


def _duplicate_titles(chapters: Sequence[ChapterStats]) -> List[str]:
    seen = set()
    duplicates: List[str] = []
    for chapter in chapters:
        title = (chapter.title or "").strip().lower()
        if not title:
            continue
        if title in seen and title not in duplicates:
            duplicates.append(title)
        seen.add(title)
    return duplicates


def _sequence_gaps(chapters: Sequence[ChapterStats]) -> List[int]:
    numbers = [n for n in (extract_chapter_number(c.title) for c in chapters) if n is not None]
    if len(numbers) < SEQUENCE_MIN_NUMBERED:
        return []
    numbers.sort()
    return [prev + 1 for prev, cur in zip(numbers, numbers[1:]) if cur - prev > 1]


def check_book_quality(
    book: BookStats,
    chapters: Sequence[ChapterStats],
    weights: QualityWeights = DEFAULT_WEIGHTS,
) -> QualityResult:
    issues: List[str] = []
    score = 100
    count = len(chapters)

    if count == 0:
        issues.append("No chapters extracted")
        score -= weights.no_chapters
    elif count < MIN_CHAPTERS:
        issues.append(f"Very few chapters: {count}")
        score -= weights.few_chapters

    if book.word_count < VERY_LOW_WORDS:
        issues.append(f"Very low word count: {book.word_count}")
        score -= weights.very_low_word_count
    elif book.word_count < LOW_WORDS:
        issues.append(f"Low word count: {book.word_count}")
        score -= weights.low_word_count

    near_empty = sum(1 for chapter in chapters if chapter.word_count < NEAR_EMPTY_WORDS)
    if near_empty:
        issues.append(f"{near_empty} near-empty chapters (< {NEAR_EMPTY_WORDS} words)")
        score -= near_empty * weights.near_empty_chapter

    if not book.has_cover:
        issues.append("No cover image")
        score -= weights.no_cover

    for chapter in chapters:
        if has_mojibake(chapter.html):
            issues.append(f"Encoding issues detected in chapter: {chapter.title}")
            score -= weights.encoding_issues
            break

    duplicates = _duplicate_titles(chapters)
    if duplicates:
        issues.append(f"Duplicate chapter titles detected: {', '.join(duplicates)}")
        score -= weights.duplicate_titles

    if count >= TRUNCATION_MIN_CHAPTERS:
        average = sum(chapter.word_count for chapter in chapters) / count
        last = chapters[-1].word_count
        if last < average * TRUNCATION_RATIO and last < TRUNCATION_MAX_WORDS:
            issues.append(f"Last chapter may be truncated: {last} words (avg: {round(average)})")
            score -= weights.truncated_last_chapter

    gaps = _sequence_gaps(chapters)
    if gaps:
        issues.append(
            f"Chapter sequence gaps detected (missing: {', '.join(str(gap) for gap in gaps)})"
        )
        score -= weights.sequence_gaps

    score = max(0, min(100, score))
    return QualityResult(score=score, issues=issues, passed=score >= PASS_THRESHOLD)
