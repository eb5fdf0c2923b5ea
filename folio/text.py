from __future__ import annotations

import html as html_lib
import re

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def strip_html(html: str) -> str:
    if not html:
        return ""
    text = _STYLE_RE.sub("", html)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    # Joiners and hair spaces are typographic glue, not word separators.
    text = text.replace("\u2060", "").replace("\u200a", "")
    return _WS_RE.sub(" ", text).strip()


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


def html_word_count(html: str) -> int:
    return count_words(strip_html(html))
