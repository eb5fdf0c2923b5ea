import json
from pathlib import Path

import pytest

from folio import quality as quality_util
from folio.quality import BookStats, ChapterStats


def _chapters(*counts: int, titles=None) -> list:
    titles = titles or [f"Chapter {idx}" for idx in range(1, len(counts) + 1)]
    return [ChapterStats(title=title, word_count=count) for title, count in zip(titles, counts)]


def _book(word_count: int, has_cover: bool = True) -> BookStats:
    return BookStats(title="Sample", word_count=word_count, has_cover=has_cover)


def test_short_story_only_loses_low_word_count_points() -> None:
    result = quality_util.check_book_quality(_book(1800), _chapters(600, 600, 600))
    assert result.score == 100 - 10
    assert result.issues == ["Low word count: 1800"]
    assert result.passed is True


def test_clean_novel_has_no_issues() -> None:
    result = quality_util.check_book_quality(_book(6000), _chapters(2000, 2000, 2000))
    assert result.score == 100
    assert result.issues == []
    assert result.to_dict() == {"score": 100, "issues": [], "pass": True}


def test_empty_book_fails() -> None:
    result = quality_util.check_book_quality(_book(0, has_cover=False), [])
    assert result.score <= 20
    assert result.passed is False
    assert result.issues[0] == "No chapters extracted"
    assert "Very low word count: 0" in result.issues


def test_duplicates_and_truncation_fire_once() -> None:
    chapters = [
        ChapterStats(title="The Voyage", word_count=615),
        ChapterStats(title="the voyage", word_count=615),
        ChapterStats(title="Landfall", word_count=615),
        ChapterStats(title="Storm", word_count=615),
        ChapterStats(title="Home", word_count=40),
    ]
    result = quality_util.check_book_quality(_book(2500), chapters)
    assert result.issues.count("Duplicate chapter titles detected: the voyage") == 1
    assert sum(1 for issue in result.issues if issue.startswith("Last chapter may be truncated")) == 1
    assert "Last chapter may be truncated: 40 words (avg: 500)" in result.issues
    assert "1 near-empty chapters (< 50 words)" in result.issues


def test_few_chapters_and_missing_cover() -> None:
    result = quality_util.check_book_quality(_book(9000, has_cover=False), _chapters(9000))
    assert result.issues == ["Very few chapters: 1", "No cover image"]
    assert result.score == 75


def test_mojibake_penalty_applies_once() -> None:
    chapters = [
        ChapterStats(title="One", word_count=3000, html="<p>cafÃ©</p>"),
        ChapterStats(title="Two", word_count=3000, html="<p>â€“</p>"),
    ]
    result = quality_util.check_book_quality(_book(6000), chapters)
    assert result.issues == ["Encoding issues detected in chapter: One"]
    assert result.score == 85


def test_mojibake_detector_ignores_clean_accents() -> None:
    assert quality_util.has_mojibake("café naïve Âme") is False
    assert quality_util.has_mojibake("bad \ufffd char") is True


def test_sequence_gaps_are_reported() -> None:
    titles = ["Chapter 1", "Chapter 2", "Chapter 4", "Chapter V"]
    result = quality_util.check_book_quality(_book(8000), _chapters(2000, 2000, 2000, 2000, titles=titles))
    assert result.issues == ["Chapter sequence gaps detected (missing: 3)"]


def test_extract_chapter_number() -> None:
    assert quality_util.extract_chapter_number("Chapter 12: The End") == 12
    assert quality_util.extract_chapter_number("CHAPTER XIV") == 14
    assert quality_util.extract_chapter_number("Ch. 3") == 3
    assert quality_util.extract_chapter_number("Prologue") is None


def test_roman_chapter_numbers_stop_at_twenty() -> None:
    assert quality_util.extract_chapter_number("Chapter XX") == 20
    assert quality_util.extract_chapter_number("Chapter XXI") is None
    assert quality_util.extract_chapter_number("Chapter XXIX") is None


def test_score_is_clamped_and_monotone() -> None:
    base = quality_util.check_book_quality(_book(6000), _chapters(2000, 2000, 2000))
    worse = quality_util.check_book_quality(_book(6000, has_cover=False), _chapters(2000, 2000, 2000))
    worst = quality_util.check_book_quality(_book(10, has_cover=False), _chapters(*([1] * 30)))
    assert base.score >= worse.score >= worst.score
    for result in (base, worse, worst):
        assert 0 <= result.score <= 100
        assert result.passed == (result.score >= 60)
    assert worst.score == 0


def test_load_weights_overrides_defaults(tmp_path: Path) -> None:
    path = tmp_path / "weights.json"
    path.write_text(json.dumps({"no_cover": 40}), encoding="utf-8")
    weights = quality_util.load_weights(path)
    assert weights.no_cover == 40
    assert weights.no_chapters == 50
    result = quality_util.check_book_quality(_book(6000, has_cover=False), _chapters(2000, 2000, 2000), weights)
    assert result.score == 60
    assert result.passed is True


def test_load_weights_rejects_unknown_names(tmp_path: Path) -> None:
    path = tmp_path / "weights.json"
    path.write_text(json.dumps({"no_covers": 40}), encoding="utf-8")
    with pytest.raises(ValueError):
        quality_util.load_weights(path)
