"""Storage-format markup transforms for comment highlighting.

Untrusted storage markup is sanitized first, then marker and image rewrites are
plain string transforms. Block-level containment cannot be read from the flat
storage string, so tagging commented blocks happens later, on a rendered surface
(see :mod:`comment_heatmap.surface`).
"""

from __future__ import annotations

import html
import logging
import re
from typing import Dict, Mapping, Sequence
from urllib.parse import quote, urlsplit

from bs4 import BeautifulSoup
from bs4 import Comment as HtmlComment

from .config import STATUS_OPEN
from .models import Comment
from .ranking import rank, score

logger = logging.getLogger(__name__)

MARKER_CLASS = "conf-inline-comment"
IMAGE_CLASS = "conf-img"
DEFAULT_TIER = 0

_MARKER_PATTERN = re.compile(
    r"<ac:inline-comment-marker\b([^>]*)>([\s\S]*?)</ac:inline-comment-marker>"
)
_MARKER_REF_PATTERN = re.compile(r'ac:ref="([^"]+)"')
_IMAGE_PATTERN = re.compile(r"<ac:image\b[^>]*>([\s\S]*?)</ac:image>")
_FILENAME_PATTERN = re.compile(r'ri:filename="([^"]+)"')

_ALLOWED_TAGS = frozenset(
    (
        "a", "abbr", "b", "blockquote", "br", "caption", "code", "col", "colgroup",
        "dd", "del", "div", "dl", "dt", "em", "figcaption", "figure", "h1", "h2",
        "h3", "h4", "h5", "h6", "hr", "i", "img", "ins", "kbd", "li", "mark", "ol",
        "p", "pre", "s", "section", "small", "span", "strong", "sub", "sup",
        "table", "tbody", "td", "tfoot", "th", "thead", "time", "tr", "u", "ul",
        "ac:inline-comment-marker", "ac:image", "ri:attachment",
    )
)
_DROPPED_TAGS = frozenset(
    (
        "script", "style", "iframe", "frame", "frameset", "object", "embed",
        "applet", "noscript", "template", "form", "input", "button", "textarea",
        "select", "option", "link", "meta", "base", "title", "head", "svg", "math",
    )
)
_ALLOWED_ATTRIBUTES = frozenset(
    (
        "href", "src", "alt", "title", "class", "id", "style", "width", "height",
        "colspan", "rowspan", "align", "start", "datetime",
        "ac:ref", "ri:filename", "data-marker-ref",
    )
)
_URL_ATTRIBUTES = frozenset(("href", "src"))
_SAFE_URL_SCHEMES = frozenset(("http", "https", "mailto", "tel"))


def tier_css_class(tier: int) -> str:
    """CSS class carrying the highlight intensity for ``tier``."""
    return f"comment-rank-{tier}"


def _is_safe_url(tag_name: str, value: str) -> bool:
    compact = "".join(char for char in value if char > " ").lower()
    try:
        scheme = urlsplit(compact).scheme
    except ValueError:
        return False
    if not scheme or scheme in _SAFE_URL_SCHEMES:
        return True
    return tag_name == "img" and compact.startswith("data:image/")


def _is_allowed_attribute(tag_name: str, name: str, value: object) -> bool:
    if name.startswith("on"):
        return False
    if name not in _ALLOWED_ATTRIBUTES and not name.startswith("data-"):
        return False
    if name in _URL_ATTRIBUTES:
        return isinstance(value, str) and _is_safe_url(tag_name, value)
    return True


def sanitize_markup(raw_markup: str) -> str:
    """Strip scripts, event handlers and unsafe URLs from storage markup.

    Business logic:
    - Script-like elements (``script``, ``style``, ``iframe``, forms, ...) are removed
      with their content.
    - Any other element outside the allowlist is unwrapped, keeping its content.
    - Attributes outside the allowlist, ``on*`` handlers and ``href``/``src`` values
      with a non-web scheme are dropped.
    - Comment markers and image macros (``ac:inline-comment-marker``, ``ac:image``,
      ``ri:attachment`` with ``ac:ref``/``ri:filename``) survive for the later
      transforms.
    """
    if not raw_markup:
        return ""

    soup = BeautifulSoup(raw_markup, "html.parser")
    for node in soup.find_all(string=lambda text: isinstance(text, HtmlComment)):
        node.extract()

    removed = 0
    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        if tag.name in _DROPPED_TAGS:
            tag.decompose()
            removed += 1
            continue
        if tag.name not in _ALLOWED_TAGS:
            tag.unwrap()
            removed += 1
            continue
        for name in list(tag.attrs):
            if not _is_allowed_attribute(tag.name, name, tag.attrs[name]):
                del tag[name]
                removed += 1

    if removed:
        logger.debug("Sanitized page markup", extra={"items_removed": removed})
    return str(soup)


def build_marker_color_map(
    comments: Sequence[Comment],
    status: str = STATUS_OPEN,
) -> Dict[str, int]:
    """Map each thread's marker ref to its visual tier.

    Roots without a marker ref are skipped. When two threads share a marker the
    higher-ranked one keeps it on purpose, so a highlight always shows the heat of
    its busiest thread rather than whichever thread was ranked last.
    """
    color_map: Dict[str, int] = {}
    for thread in score(rank(comments, status)):
        marker_ref = thread.root.markerRef
        if not marker_ref:
            continue
        color_map.setdefault(marker_ref, thread.tier)
    return color_map


def annotate_document(raw_markup: str, color_map: Mapping[str, int]) -> str:
    """Replace comment-anchor tags with highlight spans.

    Each ``<ac:inline-comment-marker ac:ref="...">`` becomes a ``span`` carrying the
    marker ref in ``data-marker-ref`` and a tier class. Markers absent from
    ``color_map`` (resolved or filtered threads) get the lowest tier.
    """
    if not raw_markup:
        return ""

    def _replace(match: "re.Match[str]") -> str:
        attrs, content = match.group(1), match.group(2)
        ref_match = _MARKER_REF_PATTERN.search(attrs)
        marker_ref = html.unescape(ref_match.group(1)) if ref_match else ""
        tier = color_map.get(marker_ref, DEFAULT_TIER)
        return (
            f'<span class="{MARKER_CLASS} {tier_css_class(tier)}" '
            f'data-marker-ref="{html.escape(marker_ref, quote=True)}">{content}</span>'
        )

    return _MARKER_PATTERN.sub(_replace, raw_markup)


def attachment_url(base_url: str, page_id: str, filename: str) -> str:
    """Download URL of a page attachment."""
    return f"{base_url}/wiki/download/attachments/{quote(page_id)}/{quote(filename)}?api=v2"


def convert_images(markup: str, page_id: str, base_url: str) -> str:
    """Replace ``<ac:image>`` macros with ``<img>`` tags pointing at the attachment.

    Macros without an ``ri:filename`` (external images, broken macros) are dropped.
    """
    if not markup:
        return ""

    def _replace(match: "re.Match[str]") -> str:
        filename_match = _FILENAME_PATTERN.search(match.group(1))
        if not filename_match:
            logger.debug("Dropping image macro without attachment filename", extra={"page_id": page_id})
            return ""
        filename = html.unescape(filename_match.group(1))
        src = html.escape(attachment_url(base_url, page_id, filename), quote=True)
        alt = html.escape(filename, quote=True)
        return f'<img src="{src}" class="{IMAGE_CLASS}" alt="{alt}" />'

    return _IMAGE_PATTERN.sub(_replace, markup)


def render_page(
    raw_markup: str,
    color_map: Mapping[str, int],
    page_id: str,
    base_url: str,
) -> str:
    """Sanitize the page, then annotate comment markers and convert image macros."""
    return convert_images(annotate_document(sanitize_markup(raw_markup), color_map), page_id, base_url)
