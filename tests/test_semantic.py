import re

from folio import semantic as semantic_util

_TAG_RE = re.compile(r"<[^>]+>")

VERSE = (
    "<blockquote>The wind was a torrent of darkness<br/>"
    "Among the gusty trees<br/>"
    "The moon was a ghostly galleon<br/>"
    "Tossed upon cloudy seas</blockquote>"
)


def test_wrap_chapter_adds_section_once() -> None:
    wrapped = semantic_util.wrap_chapter("<p>Text</p>")
    assert wrapped == '<section data-epub-type="chapter">\n<p>Text</p>\n</section>'
    assert semantic_util.wrap_chapter(wrapped) == wrapped


def test_headings_shift_to_baseline() -> None:
    html = "<h1>Title</h1><h3>Part</h3><h6>Deep</h6>"
    assert semantic_util.normalize_headings(html) == "<h2>Title</h2><h4>Part</h4><h6>Deep</h6>"


def test_headings_already_at_baseline_are_unchanged() -> None:
    html = "<h2>Title</h2><h3>Part</h3>"
    assert semantic_util.normalize_headings(html) == html


def test_verse_blockquote_is_tagged() -> None:
    result = semantic_util.tag_verse(VERSE)
    assert result.startswith('<blockquote data-epub-type="z3998:verse">')


def test_prose_blockquote_is_not_tagged() -> None:
    html = "<blockquote>One long line of prose without any breaks at all.</blockquote>"
    assert semantic_util.tag_verse(html) == html


def test_poem_class_is_tagged() -> None:
    result = semantic_util.tag_verse('<div class="poem stanza">line</div>')
    assert result == '<div class="poem stanza" data-epub-type="z3998:verse">line</div>'


def test_roman_numerals_after_context_words() -> None:
    result = semantic_util.tag_roman_numerals("<h2>Chapter XIV</h2><p>In Book ii we read I am.</p>")
    assert '<h2>Chapter <span data-epub-type="z3998:roman">XIV</span></h2>' in result
    assert "Book ii" in result
    assert result.count("z3998:roman") == 1


def test_abbreviations_are_wrapped() -> None:
    result = semantic_util.tag_abbreviations("<p>Mr. Darcy met Dr. Watson.</p>")
    assert result == (
        '<p><abbr data-epub-type="z3998:name-title">Mr.</abbr> Darcy met '
        '<abbr data-epub-type="z3998:name-title">Dr.</abbr> Watson.</p>'
    )


def test_measurements_need_a_number() -> None:
    result = semantic_util.tag_measurements("<p>He walked 10 miles.</p>")
    assert result == '<p>He walked <span data-epub-type="se:measurement">10 miles</span>.</p>'
    assert semantic_util.tag_measurements("<p>a stone wall</p>") == "<p>a stone wall</p>"


def test_measurements_accept_grouped_numbers_and_area_units() -> None:
    result = semantic_util.tag_measurements("<p>1,500 square feet</p>")
    assert '<span data-epub-type="se:measurement">1,500 square feet</span>' in result


def test_semanticize_is_idempotent() -> None:
    html = (
        "<h1>Chapter IV</h1>"
        "<p>Mr. Smith walked 3 miles.</p>"
        + VERSE
    )
    once = semantic_util.semanticize(html)
    assert semantic_util.semanticize(once) == once


def test_semanticize_keeps_existing_tags_and_attributes() -> None:
    html = '<p class="x" id="p1">Mr. Brown rode 4 leagues in Act II.</p>'
    result = semantic_util.semanticize(html)
    before = [tag for tag in _TAG_RE.findall(html)]
    for tag in before:
        assert tag in result
