"""Language tagging for foreign words and phrases.

A curated dictionary tags emphasis elements and wraps a handful of
unambiguous multi-word phrases; emphasis left untagged after that is
checked against a common-English word list and tagged when most of its
words are not English. The language guess for the statistical phase is a
hint from diacritics, not an authoritative label.
"""

from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .segments import transform_text_nodes

ENGLISH_THRESHOLD = 0.4
MIN_TOKENS = 2
WORDS_PATH = Path(__file__).parent / "data" / "english-words.txt"

_APOS = "['’]"


@dataclass(frozen=True)
class ForeignPhrase:
    pattern: re.Pattern
    lang: str
    multi_word: bool


def _phrase(term: str, lang: str, ignore_case: bool = True) -> ForeignPhrase:
    flags = re.IGNORECASE if ignore_case else 0
    body = term.replace("'", _APOS)
    source = rf"\b{body}\b"
    multi_word = " " in term or "-" in term
    return ForeignPhrase(re.compile(source, flags), lang, multi_word)


FOREIGN_PHRASES: Tuple[ForeignPhrase, ...] = (
    # French
    _phrase("monsieur", "fr"),
    _phrase("madame", "fr"),
    _phrase("mademoiselle", "fr"),
    _phrase("messieurs", "fr"),
    _phrase("mon cher", "fr"),
    _phrase("ma chère?", "fr"),
    _phrase("mon ami", "fr"),
    _phrase("ma chérie?", "fr"),
    _phrase("bon jour", "fr"),
    _phrase("bonjour", "fr"),
    _phrase("bonsoir", "fr"),
    _phrase("au revoir", "fr"),
    _phrase("en route", "fr"),
    _phrase("carte blanche", "fr"),
    _phrase("bête noire", "fr"),
    _phrase("nom de plume", "fr"),
    _phrase("vis-à-vis", "fr"),
    _phrase("c'est la vie", "fr"),
    _phrase("bon mot", "fr"),
    _phrase("tête-à-tête", "fr"),
    _phrase("raison d'être", "fr"),
    _phrase("coup d'état", "fr"),
    _phrase("tour de force", "fr"),
    _phrase("pièce de résistance", "fr"),
    _phrase("fait accompli", "fr"),
    _phrase("joie de vivre", "fr"),
    _phrase("noblesse oblige", "fr"),
    _phrase("savoir faire", "fr"),
    _phrase("je ne sais quoi", "fr"),
    _phrase("enfant terrible", "fr"),
    _phrase("idée fixe", "fr"),
    _phrase("déjà vu", "fr"),
    _phrase("cause célèbre", "fr"),
    _phrase("faux pas", "fr"),
    _phrase("laissez[- ]faire", "fr"),
    _phrase("nouveau riche", "fr"),
    _phrase("parvenu", "fr"),
    _phrase("bon vivant", "fr"),
    _phrase("hors de combat", "fr"),
    _phrase("tout de suite", "fr"),
    _phrase("par excellence", "fr"),
    _phrase("de rigueur", "fr"),
    _phrase("comme il faut", "fr"),
    _phrase("chef-d'œuvre", "fr"),
    _phrase("femme fatale", "fr"),
    _phrase("à la", "fr"),
    _phrase("au fait", "fr"),
    _phrase("petit", "fr"),
    _phrase("petite", "fr"),
    _phrase("voilà", "fr"),
    _phrase("encore", "fr"),
    # Latin
    _phrase("vice versa", "la"),
    _phrase("de facto", "la"),
    _phrase("per se", "la"),
    _phrase("in situ", "la"),
    _phrase("ad hoc", "la"),
    _phrase("prima facie", "la"),
    _phrase("a priori", "la"),
    _phrase("a posteriori", "la"),
    _phrase("in loco parentis", "la"),
    _phrase("carpe diem", "la"),
    _phrase("in extremis", "la"),
    _phrase("in memoriam", "la"),
    _phrase("mea culpa", "la"),
    _phrase("ad nauseam", "la"),
    _phrase("bona fide", "la"),
    _phrase("terra firma", "la"),
    _phrase("viva voce", "la"),
    _phrase("quid pro quo", "la"),
    _phrase("non sequitur", "la"),
    _phrase("in absentia", "la"),
    _phrase("in toto", "la"),
    _phrase("ipso facto", "la"),
    _phrase("nota bene", "la"),
    _phrase("per annum", "la"),
    _phrase("per capita", "la"),
    _phrase("sine die", "la"),
    _phrase("sine qua non", "la"),
    _phrase("sub rosa", "la"),
    _phrase("sui generis", "la"),
    _phrase("terra incognita", "la"),
    _phrase("vox populi", "la"),
    _phrase("ex libris", "la"),
    # Italian
    _phrase("allegro", "it"),
    _phrase("andante", "it"),
    _phrase("adagio", "it"),
    _phrase("presto", "it"),
    _phrase("fortissimo", "it"),
    _phrase("pianissimo", "it"),
    _phrase("mezzo-soprano", "it"),
    _phrase("contralto", "it"),
    _phrase("baritono", "it"),
    _phrase("basso", "it"),
    _phrase("aria", "it"),
    _phrase("libretto", "it"),
    _phrase("virtuoso", "it"),
    _phrase("bravissimo", "it"),
    _phrase("bravissima", "it"),
    _phrase("grazie", "it"),
    _phrase("prego", "it"),
    _phrase("maestro", "it"),
    _phrase("impresario", "it"),
    _phrase("vendetta", "it"),
    # German; bare nouns are capitalized in German, so those match case.
    _phrase("Herr", "de", ignore_case=False),
    _phrase("Frau", "de", ignore_case=False),
    _phrase("Fräulein", "de", ignore_case=False),
    _phrase("mein Herr", "de"),
    _phrase("Wunderkind", "de"),
    _phrase("Zeitgeist", "de"),
    _phrase("Weltanschauung", "de"),
    _phrase("Sturm und Drang", "de"),
    _phrase("Doppelgänger", "de"),
    _phrase("Gemütlichkeit", "de"),
    _phrase("Wanderlust", "de"),
    _phrase("Leitmotiv", "de"),
    _phrase("Realpolitik", "de"),
    _phrase("Kindergarten", "de"),
    _phrase("Gott", "de", ignore_case=False),
    _phrase("Gott im Himmel", "de"),
    _phrase("Danke", "de"),
    _phrase("Danke schön", "de"),
    _phrase("Bitte", "de"),
    _phrase("Ja", "de", ignore_case=False),
    _phrase("Nein", "de", ignore_case=False),
)

STANDALONE_PHRASES: Tuple[ForeignPhrase, ...] = tuple(
    phrase for phrase in FOREIGN_PHRASES if phrase.multi_word
)

_EMPHASIS_RE = re.compile(r"<(i|em)(\b[^>]*)>(.*?)</\1\s*>", re.IGNORECASE | re.DOTALL)
_LANG_ATTR_RE = re.compile(r"\b(?:xml:)?lang\s*=", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_TOKEN_RE = re.compile(r"[^\W\d_]+")

_GERMAN_CHARS = re.compile(r"[äöüß]")
_SPANISH_CHARS = re.compile(r"[ñáíóú¿¡]")
_FRENCH_EXCLUSIVE_CHARS = re.compile(r"[çœ]")
_FRENCH_CHARS = re.compile(r"[éèêëàâîïôûùÿ]")
_ITALIAN_CHARS = re.compile(r"[àèéìíòóù]")


@lru_cache(maxsize=1)
def english_words() -> FrozenSet[str]:
    """Common English words, loaded once from the bundled word list."""
    lines = WORDS_PATH.read_text(encoding="utf-8").splitlines()
    return frozenset(line.strip().lower() for line in lines if line.strip())


def _with_lang(tag: str, attrs: str, content: str, lang: str) -> str:
    return f'<{tag}{attrs} xml:lang="{lang}">{content}</{tag}>'


def _dictionary_lang(text: str) -> Optional[str]:
    for phrase in FOREIGN_PHRASES:
        if phrase.pattern.search(text):
            return phrase.lang
    return None


def _plain_text(content: str) -> str:
    return html_lib.unescape(_TAG_RE.sub("", content)).strip()


def tag_italic_phrases(html: str) -> str:
    """Add ``xml:lang`` to ``<i>``/``<em>`` elements holding a dictionary phrase."""
    if not html:
        return html

    def repl(match: re.Match) -> str:
        tag, attrs, content = match.group(1), match.group(2), match.group(3)
        if _LANG_ATTR_RE.search(attrs):
            return match.group(0)
        lang = _dictionary_lang(_plain_text(content))
        if lang is None:
            return match.group(0)
        return _with_lang(tag, attrs, content, lang)

    return _EMPHASIS_RE.sub(repl, html)


def _wrap_phrases(text: str) -> str:
    spans: List[Tuple[int, int, str]] = []
    for phrase in STANDALONE_PHRASES:
        for match in phrase.pattern.finditer(text):
            start, end = match.span()
            if any(start < taken_end and taken_start < end for taken_start, taken_end, _ in spans):
                continue
            spans.append((start, end, phrase.lang))
    if not spans:
        return text
    spans.sort()
    out: List[str] = []
    cursor = 0
    for start, end, lang in spans:
        out.append(text[cursor:start])
        out.append(f'<i xml:lang="{lang}">{text[start:end]}</i>')
        cursor = end
    out.append(text[cursor:])
    return "".join(out)


def wrap_standalone_phrases(html: str) -> str:
    """Wrap known multi-word phrases found in plain text in ``<i xml:lang>``."""
    if not html:
        return html
    return transform_text_nodes(html, _wrap_phrases, skip_inside=("i", "em", "a", "abbr"))


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def english_ratio(tokens: Sequence[str]) -> float:
    if not tokens:
        return 0.0
    vocabulary = english_words()
    known = sum(1 for token in tokens if token in vocabulary)
    return known / len(tokens)


def guess_language(text: str) -> str:
    lowered = text.lower()
    if _GERMAN_CHARS.search(lowered):
        return "de"
    if _SPANISH_CHARS.search(lowered):
        return "es"
    if _FRENCH_EXCLUSIVE_CHARS.search(lowered) or _FRENCH_CHARS.search(lowered):
        return "fr"
    if _ITALIAN_CHARS.search(lowered):
        return "it"
    return "la"


def tag_statistical(html: str) -> str:
    """Tag untagged emphasis whose words are mostly not common English."""
    if not html:
        return html

    def repl(match: re.Match) -> str:
        tag, attrs, content = match.group(1), match.group(2), match.group(3)
        if _LANG_ATTR_RE.search(attrs):
            return match.group(0)
        text = _plain_text(content)
        tokens = tokenize(text)
        if len(tokens) < MIN_TOKENS:
            return match.group(0)
        if english_ratio(tokens) >= ENGLISH_THRESHOLD:
            return match.group(0)
        return _with_lang(tag, attrs, content, guess_language(text))

    return _EMPHASIS_RE.sub(repl, html)


def tag_foreign_phrases(html: str) -> str:
    if not html:
        return html
    result = tag_italic_phrases(html)
    result = wrap_standalone_phrases(result)
    return tag_statistical(result)
