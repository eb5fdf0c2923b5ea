"""Typeset-quality punctuation for chapter HTML.

Straight quotes become curly quotes, double hyphens become word-joined em
dashes, digit ranges get en dashes, three dots become an ellipsis, and
honorific abbreviations are bound to the following word. Only text segments
are rewritten; tag names and attribute values are never touched.
"""

from __future__ import annotations

import re

from .segments import transform_text_flow, transform_text_nodes

LEFT_DOUBLE_QUOTE = "“"
RIGHT_DOUBLE_QUOTE = "”"
LEFT_SINGLE_QUOTE = "‘"
RIGHT_SINGLE_QUOTE = "’"
WORD_JOINER = "\u2060"
EM_DASH = "—"
EN_DASH = "–"
ELLIPSIS = "…"
NBSP = "\u00a0"
HAIR_SPACE = "\u200a"
TWO_EM_DASH = "⸺"
THREE_EM_DASH = "⸻"

WJ_EM_DASH = WORD_JOINER + EM_DASH
WJ_ELLIPSIS = WORD_JOINER + ELLIPSIS

ABBREVIATIONS = (
    "Mr",
    "Mrs",
    "Ms",
    "Dr",
    "St",
    "Jr",
    "Sr",
    "Prof",
    "Rev",
    "Vol",
    "No",
    "vs",
    "etc",
)

_QUOTE_ENTITIES = (("&quot;", '"'), ("&#34;", '"'), ("&apos;", "'"), ("&#39;", "'"))

_CONTRACTION_RE = re.compile(r"(\w)'(t|s|d|ll|re|ve|m)\b", re.IGNORECASE)
_LEADING_ELISION_RE = re.compile(r"(?<!\w)'(tis|twas|em|n|cause)\b", re.IGNORECASE)
_PLURAL_POSSESSIVE_RE = re.compile(r"(\w)s'(?=\s|$)")
_OCLOCK_RE = re.compile(r"\bo'clock", re.IGNORECASE)
_DECADE_RE = re.compile(r"'(?=\d\ds?\b)")

_OPEN_DOUBLE_RE = re.compile(r'(^|[\s(\[{])"')
_CLOSE_DOUBLE_RE = re.compile(r'"(?=[\s.,;:!?)\]}\-—–]|$)')
_WORD_CLOSE_DOUBLE_RE = re.compile(r'(?<=\w)"')
_WORD_OPEN_DOUBLE_RE = re.compile(r'"(?=\w)')

_OPEN_SINGLE_RE = re.compile(r"(^|[\s(\[{“])'(?=\w)")
_CLOSE_SINGLE_RE = re.compile(r"'(?=[\s.,;:!?)\]}\-—–”]|$)")

_DOUBLE_HYPHEN_RE = re.compile(r" ?-- ?")
_SPACED_EM_DASH_RE = re.compile(r" ?— ?")
_BARE_EM_DASH_RE = re.compile(r"(?<!\u2060)—")
_THREE_EM_RUN_RE = re.compile(r"(?:\u2060?—){3,}")
_TWO_EM_RUN_RE = re.compile(r"(?:\u2060?—){2}")
_DIGIT_RANGE_RE = re.compile(r"(?<=\d)-(?=\d)")
_SPACED_DOTS_RE = re.compile(r"\. \. \.")
_THREE_DOTS_RE = re.compile(r"\.\.\.")
_BARE_ELLIPSIS_RE = re.compile(r"(?<!\u2060)…")
_ABBR_SPACE_RE = re.compile(
    r"\b(" + "|".join(ABBREVIATIONS) + r")\. (?=[A-Za-z])"
)
_SECTION_BREAK_RE = re.compile(r"<p\b[^>]*>\s*(?:\*\s*){2,}</p\s*>", re.IGNORECASE)


def decode_quote_entities(text: str) -> str:
    for entity, char in _QUOTE_ENTITIES:
        text = text.replace(entity, char)
    return text


def _curl_quotes(s: str) -> str:
    # Contractions and elisions first, or their apostrophes read as quotes.
    s = _CONTRACTION_RE.sub(lambda m: f"{m.group(1)}{RIGHT_SINGLE_QUOTE}{m.group(2)}", s)
    s = _LEADING_ELISION_RE.sub(lambda m: f"{RIGHT_SINGLE_QUOTE}{m.group(1)}", s)
    s = _PLURAL_POSSESSIVE_RE.sub(lambda m: f"{m.group(1)}s{RIGHT_SINGLE_QUOTE}", s)
    s = _OCLOCK_RE.sub(lambda m: m.group(0)[0] + RIGHT_SINGLE_QUOTE + "clock", s)
    s = _DECADE_RE.sub(RIGHT_SINGLE_QUOTE, s)

    s = _OPEN_DOUBLE_RE.sub(lambda m: m.group(1) + LEFT_DOUBLE_QUOTE, s)
    s = _CLOSE_DOUBLE_RE.sub(RIGHT_DOUBLE_QUOTE, s)
    s = _WORD_CLOSE_DOUBLE_RE.sub(RIGHT_DOUBLE_QUOTE, s)
    s = _WORD_OPEN_DOUBLE_RE.sub(LEFT_DOUBLE_QUOTE, s)
    s = s.replace('"', RIGHT_DOUBLE_QUOTE)

    s = _OPEN_SINGLE_RE.sub(lambda m: m.group(1) + LEFT_SINGLE_QUOTE, s)
    s = _CLOSE_SINGLE_RE.sub(RIGHT_SINGLE_QUOTE, s)
    # A stray straight single quote is far more often an apostrophe.
    return s.replace("'", RIGHT_SINGLE_QUOTE)


def smart_quotes(html: str) -> str:
    """Curl straight quotes, resolving direction across inline markup."""
    html = transform_text_nodes(html, decode_quote_entities)
    return transform_text_flow(html, _curl_quotes)


def normalize_em_dashes(text: str) -> str:
    s = _DOUBLE_HYPHEN_RE.sub(WJ_EM_DASH, text)
    s = _SPACED_EM_DASH_RE.sub(EM_DASH, s)
    return _BARE_EM_DASH_RE.sub(WJ_EM_DASH, s)


def normalize_multi_em_dashes(text: str) -> str:
    s = _THREE_EM_RUN_RE.sub(THREE_EM_DASH, text)
    return _TWO_EM_RUN_RE.sub(TWO_EM_DASH, s)


def normalize_en_dashes(text: str) -> str:
    return _DIGIT_RANGE_RE.sub(WORD_JOINER + EN_DASH + WORD_JOINER, text)


def normalize_ellipses(text: str) -> str:
    s = _SPACED_DOTS_RE.sub(WJ_ELLIPSIS, text)
    s = _THREE_DOTS_RE.sub(WJ_ELLIPSIS, s)
    return _BARE_ELLIPSIS_RE.sub(WJ_ELLIPSIS, s)


def nbsp_after_abbreviations(text: str) -> str:
    return _ABBR_SPACE_RE.sub(lambda m: f"{m.group(1)}.{NBSP}", text)


def insert_hair_spaces(text: str) -> str:
    s = text.replace(
        LEFT_DOUBLE_QUOTE + LEFT_SINGLE_QUOTE,
        LEFT_DOUBLE_QUOTE + HAIR_SPACE + LEFT_SINGLE_QUOTE,
    )
    return s.replace(
        RIGHT_SINGLE_QUOTE + RIGHT_DOUBLE_QUOTE,
        RIGHT_SINGLE_QUOTE + HAIR_SPACE + RIGHT_DOUBLE_QUOTE,
    )


def normalize_section_breaks(html: str) -> str:
    return _SECTION_BREAK_RE.sub("<hr/>", html)


def _dashes_and_ellipses(text: str) -> str:
    s = normalize_em_dashes(text)
    s = normalize_multi_em_dashes(s)
    s = normalize_en_dashes(s)
    return normalize_ellipses(s)


def typographize(html: str) -> str:
    if not html:
        return html
    # Whole-paragraph replacement, so it runs on the markup itself.
    result = normalize_section_breaks(html)
    result = smart_quotes(result)
    result = transform_text_nodes(result, _dashes_and_ellipses)
    # The abbreviation and the following word may sit in different text nodes.
    result = transform_text_flow(result, nbsp_after_abbreviations)
    return transform_text_nodes(result, insert_hair_spaces)
