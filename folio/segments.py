from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List

_TAG_NAME_RE = re.compile(r"^<\s*(/)?\s*([A-Za-z][A-Za-z0-9:_-]*)")
_INLINE_TAGS = {
    "a",
    "abbr",
    "b",
    "bdi",
    "bdo",
    "cite",
    "code",
    "del",
    "dfn",
    "em",
    "font",
    "i",
    "ins",
    "kbd",
    "mark",
    "q",
    "s",
    "samp",
    "small",
    "span",
    "strike",
    "strong",
    "sub",
    "sup",
    "time",
    "tt",
    "u",
    "var",
}


@dataclass(frozen=True)
class Segment:
    text: str
    is_tag: bool


def split_html_segments(html: str) -> List[Segment]:
    """Split ``html`` into alternating tag and text segments.

    Joining the ``text`` of every segment reproduces the input exactly. A ``<``
    without a closing ``>`` is kept as trailing text.
    """
    segments: List[Segment] = []
    if not html:
        return segments
    idx = 0
    length = len(html)
    while idx < length:
        if html[idx] == "<":
            end = html.find(">", idx)
            if end == -1:
                segments.append(Segment(html[idx:], False))
                break
            segments.append(Segment(html[idx : end + 1], True))
            idx = end + 1
            continue
        nxt = html.find("<", idx)
        if nxt == -1:
            segments.append(Segment(html[idx:], False))
            break
        segments.append(Segment(html[idx:nxt], False))
        idx = nxt
    return segments


def tag_name(segment: str) -> tuple[str, bool]:
    """Return ``(name, is_closing)`` for a tag segment; name is lowercase."""
    match = _TAG_NAME_RE.match(segment)
    if not match:
        return "", False
    return match.group(2).lower(), bool(match.group(1))


def _is_self_closing(segment: str) -> bool:
    return segment.rstrip(">").rstrip().endswith("/")


def transform_text_nodes(
    html: str,
    fn: Callable[[str], str],
    skip_inside: Iterable[str] = (),
) -> str:
    """Apply ``fn`` to text segments only and rejoin.

    Text nested inside any element named in ``skip_inside`` is left alone.
    """
    if not html:
        return html
    skip = {name.lower() for name in skip_inside}
    depth = 0
    out: List[str] = []
    for segment in split_html_segments(html):
        if segment.is_tag:
            if skip:
                name, closing = tag_name(segment.text)
                if name in skip and not _is_self_closing(segment.text):
                    if closing:
                        depth = max(0, depth - 1)
                    else:
                        depth += 1
            out.append(segment.text)
            continue
        if depth:
            out.append(segment.text)
        else:
            out.append(fn(segment.text))
    return "".join(out)


def transform_text_flow(html: str, fn: Callable[[str], str]) -> str:
    """Apply a length-preserving ``fn`` to all text segments at once.

    Text segments are joined into one string so that ``fn`` sees context
    across inline markup. Block-level tag boundaries are rendered as a newline.
    If ``fn`` changes the length, it is applied per segment instead.
    """
    if not html:
        return html
    segments = split_html_segments(html)
    pieces: List[str] = []
    spans: List[tuple[int, int]] = []
    cursor = 0
    for segment in segments:
        if segment.is_tag:
            name, _closing = tag_name(segment.text)
            if name not in _INLINE_TAGS:
                pieces.append("\n")
                cursor += 1
            spans.append((-1, -1))
            continue
        pieces.append(segment.text)
        spans.append((cursor, cursor + len(segment.text)))
        cursor += len(segment.text)

    flow = "".join(pieces)
    result = fn(flow)
    if len(result) != len(flow):
        return transform_text_nodes(html, fn)

    out: List[str] = []
    for segment, (start, end) in zip(segments, spans):
        if segment.is_tag:
            out.append(segment.text)
        else:
            out.append(result[start:end])
    return "".join(out)
