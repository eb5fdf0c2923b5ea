from __future__ import annotations

import base64
import binascii
import html as html_lib
import posixpath
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import unquote

PLACEHOLDER_TEMPLATE = "__BASE64_IMAGE_{index}__"
IMAGE_URL_PREFIX = "/images/"

_CAPTION_RE = re.compile(r"\[Illustration:\s*([^\]]+)\]", re.IGNORECASE)
_DATA_URI_RE = re.compile(
    r"""src\s*=\s*(["'])data:image/([^;"']+);base64,([^"']+)\1""", re.IGNORECASE
)
_PLACEHOLDER_RE = re.compile(r'src="__BASE64_IMAGE_(\d+)__"')
_IMAGE_TAG_RE = re.compile(r"<(img|image)\b([^>]*)>", re.IGNORECASE)
_REF_ATTR_RE = re.compile(
    r"""((?<![\w:-])(?:src|xlink:href|href)\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL
)
_ALT_ATTR_RE = re.compile(r"""(?<![\w:-])alt\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9.\-_]")

_EXTENSIONS = {"jpeg": "jpg", "svg+xml": "svg", "x-icon": "ico"}


@dataclass(frozen=True)
class InlineImage:
    index: int
    data: bytes
    media_type: str
    filename: str


def extract_illustration_captions(html: str) -> List[str]:
    """Return ``[Illustration: ...]`` captions in document order."""
    if not html:
        return []
    captions = []
    for match in _CAPTION_RE.finditer(html):
        caption = _WS_RE.sub(" ", html_lib.unescape(_TAG_RE.sub("", match.group(1)))).strip()
        if caption:
            captions.append(caption)
    return captions


def _decode_base64(payload: str) -> Optional[bytes]:
    cleaned = re.sub(r"\s+", "", payload)
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None
    return data or None


def image_extension(subtype: str) -> str:
    subtype = subtype.strip().lower()
    return _EXTENSIONS.get(subtype, _UNSAFE_FILENAME_RE.sub("_", subtype) or "bin")


def extract_base64_images(html: str, prefix: str = "") -> Tuple[str, List[InlineImage]]:
    """Swap data-URI image sources for placeholders and decode their payloads.

    Payloads that fail to decode are left in place. ``prefix`` namespaces the
    generated filenames so images from different chapters never collide.
    """
    images: List[InlineImage] = []
    if not html:
        return html, images

    def repl(match: re.Match) -> str:
        subtype, payload = match.group(2), match.group(3)
        data = _decode_base64(payload)
        if data is None:
            return match.group(0)
        index = len(images)
        stem = f"{prefix}-inline-{index}" if prefix else f"inline-{index}"
        images.append(
            InlineImage(
                index=index,
                data=data,
                media_type=f"image/{subtype.strip().lower()}",
                filename=image_filename(f"{stem}.{image_extension(subtype)}"),
            )
        )
        return f'src="{PLACEHOLDER_TEMPLATE.format(index=index)}"'

    return _DATA_URI_RE.sub(repl, html), images


def replace_base64_placeholders(html: str, urls: Mapping[int, str]) -> str:
    if not html:
        return html

    def repl(match: re.Match) -> str:
        url = urls.get(int(match.group(1)))
        return f'src="{url}"' if url else match.group(0)

    return _PLACEHOLDER_RE.sub(repl, html)


def build_image_map(images: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """Map every form an image href may take in chapter markup to its URL.

    ``images`` yields ``(manifest_href, url)`` pairs.
    """
    mapping: Dict[str, str] = {}
    for href, url in images:
        if not href:
            continue
        variants = [href]
        decoded = unquote(href)
        if decoded != href:
            variants.append(decoded)
        for variant in variants:
            mapping[f"{IMAGE_URL_PREFIX}{variant.lstrip('/')}"] = url
            mapping[variant] = url
    return mapping


def _strip_suffix(src: str) -> str:
    for sep in ("#", "?"):
        src = src.split(sep, 1)[0]
    return src


def resolve_image_url(src: str, image_map: Mapping[str, str]) -> Optional[str]:
    if src in image_map:
        return image_map[src]
    base = _strip_suffix(src)
    if base in image_map:
        return image_map[base]
    decoded = unquote(base)
    # Partial matches must end on a path boundary; longest key wins.
    for key in sorted(image_map, key=len, reverse=True):
        tail = key.lstrip("/")
        if not tail:
            continue
        for candidate in (base, decoded):
            if candidate == tail or candidate.endswith("/" + tail):
                return image_map[key]
    return None


def _apply_alt(attrs: str, caption: str) -> str:
    escaped = html_lib.escape(caption, quote=True)
    match = _ALT_ATTR_RE.search(attrs)
    if match:
        return f'{attrs[: match.start()]}alt="{escaped}"{attrs[match.end():]}'
    body = attrs.rstrip()
    closing = ""
    if body.endswith("/"):
        body, closing = body[:-1].rstrip(), " /"
    return f'{body} alt="{escaped}"{closing}'


def rewrite_image_paths(
    html: str,
    image_map: Mapping[str, str],
    captions: Sequence[str] = (),
) -> str:
    """Point image references at their stored URLs and fill missing alt text."""
    if not html:
        return html
    caption_iter = iter(captions)

    def repl(match: re.Match) -> str:
        tag, attrs = match.group(1), match.group(2)
        ref = _REF_ATTR_RE.search(attrs)
        if ref is not None:
            url = resolve_image_url(html_lib.unescape(ref.group(3)), image_map)
            if url is not None:
                new_ref = f'{ref.group(1)}"{html_lib.escape(url)}"'
                attrs = attrs[: ref.start()] + new_ref + attrs[ref.end() :]
        if tag.lower() == "img":
            alt = _ALT_ATTR_RE.search(attrs)
            if alt is None or not alt.group(2).strip():
                caption = next(caption_iter, None)
                if caption is not None:
                    attrs = _apply_alt(attrs, caption)
        return f"<{tag}{attrs}>"

    return _IMAGE_TAG_RE.sub(repl, html)


def image_filename(href: str) -> str:
    basename = posixpath.basename(href or "")
    return _UNSAFE_FILENAME_RE.sub("_", basename) or "image.bin"
