from __future__ import annotations

import json
import re
import warnings
from copy import deepcopy
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

RULE_KEYS = (
    "boilerplate_patterns",
    "catalog_link_patterns",
    "note_href_patterns",
)

DEFAULT_RULES: Dict[str, List[str]] = {
    "boilerplate_patterns": [
        r"The Project Gutenberg E[Bb]ook",
        r"Project Gutenberg License",
        r"www\.gutenberg\.org",
        r"gutenberg\.org/license",
        r"This eBook is for the use of anyone anywhere",
        r"SMALL PRINT!",
        r"START OF (?:THIS |THE )?PROJECT GUTENBERG",
        r"END OF (?:THIS |THE )?PROJECT GUTENBERG",
        r"\*\*\* START OF",
        r"\*\*\* END OF",
        r"Most people start at our Web site",
        r"PLEASE READ THIS BEFORE YOU DISTRIBUTE",
        r"Updated editions will replace the previous one",
        r"You may copy it, give it away or re-use it",
        r"Creating the works from print editions",
        r"The Foundation's principal office is in",
        r"Professor Michael S\. Hart was the originator",
        r"The Project Gutenberg Literary Archive Foundation",
        r"Volunteers and financial support",
        r"This etext was prepared by",
        r"^\s*Produced by\b",
        r"by David Widger",
        r"^\s*\[?\s*(?:Pg|Page)\.?\s*[0-9ivxlcdm]+\s*\]?\s*$",
    ],
    "catalog_link_patterns": [
        r"gutenberg\.org",
    ],
    "note_href_patterns": [
        r"#.*(?:note|footnote|endnote|fn)",
        r"(?:note|footnote|endnote)s?[^/]*\.x?html?",
    ],
}

BLOCK_TAGS = ("p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "div", "span", "pre")
STRUCTURAL_BLOCK_TAGS = tuple(tag for tag in BLOCK_TAGS if tag != "span")

_SCRIPT_STYLE_RE = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_START_BLOCK_RE = re.compile(
    r"\*\*\*\s*START OF (?:THIS |THE )?PROJECT GUTENBERG.*?\*\*\*",
    re.IGNORECASE | re.DOTALL,
)
_END_BLOCK_RE = re.compile(
    r"\*\*\*\s*END OF (?:THIS |THE )?PROJECT GUTENBERG.*\Z",
    re.IGNORECASE | re.DOTALL,
)
_ILLUSTRATION_RE = re.compile(r"\[Illustration(?:[:.][^\]]*)?\]", re.IGNORECASE)
_FOOTNOTE_RE = re.compile(r"\[Footnote\b[^\]]*\]", re.IGNORECASE)
_PAGE_MARKER_RE = re.compile(
    r"\[(?:Pg|Page|p\.)\s*[0-9ivxlcdm]+\]|\{(?:Pg\.?\s*)?\d+\}",
    re.IGNORECASE,
)
_EMPTY_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>\s*</p\s*>", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n\s*\n\s*\n")


@dataclass(frozen=True)
class CleanRules:
    boilerplate_patterns: Tuple[str, ...]
    catalog_link_patterns: Tuple[str, ...]
    note_href_patterns: Tuple[str, ...]
    source_path: Optional[Path] = None
    replace_defaults: bool = False


def load_rules(rules_path: Optional[Path] = None) -> CleanRules:
    rules = deepcopy(DEFAULT_RULES)
    replace_defaults = False

    if rules_path is not None:
        data = json.loads(Path(rules_path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Clean rules must be a JSON object: {rules_path}")
        replace_defaults = bool(data.get("replace_defaults", False))
        if replace_defaults:
            rules = {key: [] for key in RULE_KEYS}
        for key in RULE_KEYS:
            if key in data:
                value = data[key]
                if not isinstance(value, list):
                    raise ValueError(f"Rules key '{key}' must be a list.")
                rules[key].extend(str(item) for item in value)

    return CleanRules(
        boilerplate_patterns=tuple(rules["boilerplate_patterns"]),
        catalog_link_patterns=tuple(rules["catalog_link_patterns"]),
        note_href_patterns=tuple(rules["note_href_patterns"]),
        source_path=Path(rules_path) if rules_path is not None else None,
        replace_defaults=replace_defaults,
    )


def compile_patterns(patterns: Iterable[str]) -> Tuple[re.Pattern, ...]:
    compiled: List[re.Pattern] = []
    for pattern in patterns:
        with warnings.catch_warnings():
            warnings.filterwarnings(
                "ignore",
                category=FutureWarning,
                message="Possible nested set.*",
            )
            compiled.append(re.compile(pattern, flags=re.IGNORECASE | re.MULTILINE))
    return tuple(compiled)


@lru_cache(maxsize=8)
def _compiled(rules: CleanRules) -> Tuple[Tuple[re.Pattern, ...], ...]:
    return (
        compile_patterns(rules.boilerplate_patterns),
        compile_patterns(rules.catalog_link_patterns),
        compile_patterns(rules.note_href_patterns),
    )


_DEFAULT = load_rules()


def _matches_any(patterns: Iterable[re.Pattern], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def _remove_boilerplate_blocks(soup: BeautifulSoup, patterns: Tuple[re.Pattern, ...]) -> bool:
    changed = False
    # Deepest blocks first so a wrapper is never removed for its child's text.
    blocks = list(soup.find_all(BLOCK_TAGS))
    for block in reversed(blocks):
        if getattr(block, "decomposed", False) or block.parent is None:
            continue
        if block.find(STRUCTURAL_BLOCK_TAGS) is not None:
            continue
        text = block.get_text(separator=" ", strip=True)
        if text and _matches_any(patterns, text):
            block.decompose()
            changed = True
    return changed


def _remove_catalog_links(soup: BeautifulSoup, patterns: Tuple[re.Pattern, ...]) -> bool:
    changed = False
    for anchor in soup.find_all("a", href=True):
        if getattr(anchor, "decomposed", False):
            continue
        if _matches_any(patterns, str(anchor.get("href") or "")):
            anchor.decompose()
            changed = True
    return changed


def _unwrap_note_links(soup: BeautifulSoup, patterns: Tuple[re.Pattern, ...]) -> bool:
    changed = False
    for anchor in soup.find_all("a", href=True):
        if _matches_any(patterns, str(anchor.get("href") or "")):
            anchor.unwrap()
            changed = True
    return changed


def remove_inline_markers(html: str) -> str:
    html = _ILLUSTRATION_RE.sub("", html)
    html = _FOOTNOTE_RE.sub("", html)
    html = _PAGE_MARKER_RE.sub("", html)
    return _EMPTY_PARAGRAPH_RE.sub("", html)


def clean_gutenberg_content(html: str, rules: Optional[CleanRules] = None) -> str:
    if not html:
        return html
    boilerplate, catalog_links, note_hrefs = _compiled(rules or _DEFAULT)

    cleaned = _START_BLOCK_RE.sub("", html)
    cleaned = _END_BLOCK_RE.sub("", cleaned)

    soup = BeautifulSoup(cleaned, "html.parser")
    changed = _remove_boilerplate_blocks(soup, boilerplate)
    changed = _remove_catalog_links(soup, catalog_links) or changed
    changed = _unwrap_note_links(soup, note_hrefs) or changed
    if changed:
        cleaned = soup.decode(formatter="minimal")

    cleaned = remove_inline_markers(cleaned)
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def clean_chapter_html(html: str, rules: Optional[CleanRules] = None) -> str:
    """Strip scripts, styles and source-platform boilerplate from a chapter."""
    if not html:
        return html
    cleaned = _SCRIPT_STYLE_RE.sub("", html)
    cleaned = clean_gutenberg_content(cleaned, rules=rules)
    return cleaned.strip()
