"""Structural and accessibility markup for chapter HTML.

Every step only adds markup: a chapter section wrapper, shifted heading
levels, verse attributes, and spans or ``abbr`` elements around Roman
numerals, honorifics and measurements. Each step is idempotent.
"""

from __future__ import annotations

import html as html_lib
import re
from typing import Callable, List

from .segments import split_html_segments, tag_name, transform_text_nodes

BASELINE_HEADING = 2
MAX_HEADING = 6

CHAPTER_TYPE = "chapter"
VERSE_TYPE = "z3998:verse"
ROMAN_TYPE = "z3998:roman"
NAME_TITLE_TYPE = "z3998:name-title"
MEASUREMENT_TYPE = "se:measurement"

NAME_TITLE_ABBRS = (
    "Mr",
    "Mrs",
    "Ms",
    "Miss",
    "Dr",
    "Prof",
    "Rev",
    "St",
    "Jr",
    "Sr",
    "Capt",
    "Col",
    "Gen",
    "Sgt",
    "Cpl",
    "Lt",
    "Maj",
    "Adm",
    "Cmdr",
    "Supt",
    "Insp",
    "Gov",
    "Pres",
    "Sen",
    "Rep",
)

ROMAN_CONTEXT_WORDS = (
    "Chapter",
    "Act",
    "Scene",
    "Part",
    "Book",
    "Volume",
    "Vol",
    "Canto",
    "Section",
    "Article",
)

# Longer spellings precede their prefixes inside the alternation.
MEASUREMENT_UNITS = (
    "miles",
    "mile",
    "yards",
    "yard",
    "feet",
    "foot",
    "ft",
    "inches",
    "inch",
    "leagues",
    "league",
    "furlongs",
    "furlong",
    "fathoms",
    "fathom",
    "rods",
    "rod",
    "chains",
    "acres",
    "acre",
    "hectares",
    "pounds",
    "pound",
    "lbs",
    "lb",
    "ounces",
    "ounce",
    "oz",
    "stones",
    "stone",
    "tons",
    "ton",
    "hundredweight",
    "cwt",
    "grains",
    "drams",
    "gallons",
    "gallon",
    "quarts",
    "quart",
    "pints",
    "pint",
    "bushels",
    "bushel",
    "pecks",
    "peck",
    "gills",
    "shillings",
    "shilling",
    "pence",
    "penny",
    "guineas",
    "guinea",
    "sovereigns",
    "crowns",
    "farthings",
    "dollars",
    "dollar",
    "cents",
    "francs",
    "knots",
    "mph",
)

_VERSE_BLOCKS = {"p", "div", "blockquote", "pre", "section", "ol", "ul"}
_VERSE_CLASS_RE = re.compile(r"verse|poem|stanza", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r"""\bclass\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)
_EPUB_TYPE_ATTR_RE = re.compile(r"""\bdata-epub-type\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)
_TAG_END_RE = re.compile(r"\s*/?>$")
_CHAPTER_START_RE = re.compile(
    r"""^\s*<section\b[^>]*\b(?:data-epub-type|epub:type)\s*=\s*["'][^"']*\bchapter\b""",
    re.IGNORECASE,
)
_HEADING_RE = re.compile(r"^h([1-6])$")
_BLOCKQUOTE_RE = re.compile(
    r"(<blockquote\b[^>]*>)(.*?)(</blockquote\s*>)", re.IGNORECASE | re.DOTALL
)
_BR_RE = re.compile(r"<br\b[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")

_ROMAN_RE = re.compile(
    r"\b((?i:" + "|".join(ROMAN_CONTEXT_WORDS) + r")\.?)(\s+)"
    r"(M{0,3}(?:CM|CD|D?C{0,3})(?:XC|XL|L?X{0,3})(?:IX|IV|V?I{0,3}))\b"
)
_ABBR_RE = re.compile(r"\b(" + "|".join(NAME_TITLE_ABBRS) + r")\.")
_MEASUREMENT_RE = re.compile(
    r"(?<![\w.,])((?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?)"
    r"([ \u00a0])"
    r"((?:square\s+|cubic\s+)?(?:" + "|".join(MEASUREMENT_UNITS) + r"))\b",
    re.IGNORECASE,
)

VERSE_MIN_BREAKS = 3
VERSE_MIN_LINES = 4
VERSE_MAX_AVG_LINE = 60


def _add_attribute(tag: str, name: str, value: str) -> str:
    match = _TAG_END_RE.search(tag)
    if match is None:
        return tag
    return f'{tag[: match.start()]} {name}="{value}"{tag[match.start():]}'


def _epub_type(tag: str) -> str:
    match = _EPUB_TYPE_ATTR_RE.search(tag)
    return match.group(2) if match else ""


def _transform_outside(html: str, fn: Callable[[str], str], element: str, epub_type: str) -> str:
    """Apply ``fn`` to text not already inside ``<element data-epub-type=epub_type>``."""
    stack: List[bool] = []
    out: List[str] = []
    for segment in split_html_segments(html):
        if segment.is_tag:
            name, closing = tag_name(segment.text)
            if name == element and not segment.text.rstrip(">").rstrip().endswith("/"):
                if closing:
                    if stack:
                        stack.pop()
                else:
                    stack.append(epub_type in _epub_type(segment.text).split())
            out.append(segment.text)
            continue
        out.append(segment.text if any(stack) else fn(segment.text))
    return "".join(out)


def wrap_chapter(html: str) -> str:
    if not html or _CHAPTER_START_RE.match(html):
        return html
    return f'<section data-epub-type="{CHAPTER_TYPE}">\n{html}\n</section>'


def normalize_headings(html: str) -> str:
    """Shift headings so the shallowest one sits at the baseline level."""
    if not html:
        return html
    segments = split_html_segments(html)
    levels = []
    for segment in segments:
        if segment.is_tag:
            match = _HEADING_RE.match(tag_name(segment.text)[0])
            if match:
                levels.append(int(match.group(1)))
    if not levels or min(levels) >= BASELINE_HEADING:
        return html
    shift = BASELINE_HEADING - min(levels)

    out: List[str] = []
    for segment in segments:
        text = segment.text
        if segment.is_tag:
            match = _HEADING_RE.match(tag_name(text)[0])
            if match:
                level = min(int(match.group(1)) + shift, MAX_HEADING)
                text = re.sub(r"^(<\s*/?\s*)[hH][1-6]", rf"\g<1>h{level}", text, count=1)
        out.append(text)
    return "".join(out)


def _verse_lines(content: str) -> List[str]:
    lines = []
    for part in _BR_RE.split(content):
        line = _WS_RE.sub(" ", html_lib.unescape(_TAG_RE.sub("", part))).strip()
        if line:
            lines.append(line)
    return lines


def _looks_like_verse(content: str) -> bool:
    if len(_BR_RE.findall(content)) < VERSE_MIN_BREAKS:
        return False
    lines = _verse_lines(content)
    if len(lines) < VERSE_MIN_LINES:
        return False
    return sum(len(line) for line in lines) / len(lines) < VERSE_MAX_AVG_LINE


def tag_verse(html: str) -> str:
    if not html:
        return html
    out: List[str] = []
    for segment in split_html_segments(html):
        text = segment.text
        if segment.is_tag:
            name, closing = tag_name(text)
            if name in _VERSE_BLOCKS and not closing and not _epub_type(text):
                class_match = _CLASS_ATTR_RE.search(text)
                if class_match and _VERSE_CLASS_RE.search(class_match.group(2)):
                    text = _add_attribute(text, "data-epub-type", VERSE_TYPE)
        out.append(text)
    result = "".join(out)

    def repl(match: re.Match) -> str:
        opening, content, closing = match.groups()
        if _epub_type(opening) or not _looks_like_verse(content):
            return match.group(0)
        return _add_attribute(opening, "data-epub-type", VERSE_TYPE) + content + closing

    return _BLOCKQUOTE_RE.sub(repl, result)


def tag_roman_numerals(html: str) -> str:
    """Wrap uppercase Roman numerals that follow a structural word like Chapter."""
    if not html:
        return html

    def repl(match: re.Match) -> str:
        word, space, numeral = match.groups()
        if not numeral:
            return match.group(0)
        return f'{word}{space}<span data-epub-type="{ROMAN_TYPE}">{numeral}</span>'

    return _transform_outside(html, lambda text: _ROMAN_RE.sub(repl, text), "span", ROMAN_TYPE)


def tag_abbreviations(html: str) -> str:
    if not html:
        return html
    wrap = rf'<abbr data-epub-type="{NAME_TITLE_TYPE}">\1.</abbr>'
    return transform_text_nodes(html, lambda text: _ABBR_RE.sub(wrap, text), skip_inside=("abbr",))


def tag_measurements(html: str) -> str:
    """Wrap a number followed by a unit word; a unit word alone is left alone."""
    if not html:
        return html
    wrap = rf'<span data-epub-type="{MEASUREMENT_TYPE}">\1\2\3</span>'
    return _transform_outside(
        html, lambda text: _MEASUREMENT_RE.sub(wrap, text), "span", MEASUREMENT_TYPE
    )


def semanticize(html: str) -> str:
    if not html:
        return html
    result = wrap_chapter(html)
    result = normalize_headings(result)
    result = tag_verse(result)
    result = tag_roman_numerals(result)
    result = tag_abbreviations(result)
    return tag_measurements(result)
