"""Comment body documents.

Confluence returns inline comment bodies in Atlassian document format: a nested
JSON tree whose leaves are ``text`` nodes. The body is modelled here as a small
tagged variant so callers never reach into raw dictionaries:

- :class:`TextNode` carries a run of text.
- :class:`ContainerNode` carries an ordered list of child nodes (paragraphs,
  lists, mentions, the document root itself).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Tuple, Union

logger = logging.getLogger(__name__)

NO_CONTENT = "(no content)"
ELLIPSIS = "…"


@dataclass(frozen=True)
class TextNode:
    """A leaf run of text."""

    text: str


@dataclass(frozen=True)
class ContainerNode:
    """A structural node with ordered children."""

    type: str
    children: Tuple["BodyNode", ...] = ()


BodyNode = Union[TextNode, ContainerNode]

EMPTY_BODY = ContainerNode(type="doc")


def _parse_node(raw: Any) -> BodyNode:
    """Convert a raw document tree bottom-up with an explicit stack."""
    stack: List[Tuple[Any, bool]] = [(raw, False)]
    built: List[BodyNode] = []
    while stack:
        current, expanded = stack.pop()
        if not isinstance(current, dict):
            built.append(ContainerNode(type="unknown"))
            continue

        node_type = str(current.get("type") or "unknown")
        if node_type == "text":
            built.append(TextNode(text=str(current.get("text") or "")))
            continue

        content = current.get("content")
        if not isinstance(content, list):
            built.append(ContainerNode(type=node_type))
            continue

        if not expanded:
            stack.append((current, True))
            stack.extend((child, False) for child in reversed(content))
            continue

        # Each child left exactly one node on top of ``built``, in order.
        split = len(built) - len(content)
        children = tuple(built[split:])
        del built[split:]
        built.append(ContainerNode(type=node_type, children=children))

    return built[0]


def parse_body(body: Any) -> BodyNode:
    """Parse a comment ``body`` payload into a :data:`BodyNode` tree.

    Accepts the API shape ``{"atlas_doc_format": {"value": ...}}`` where the value
    is either a JSON string or an already-decoded dictionary. Anything missing or
    malformed yields an empty document rather than an error.
    """
    if not isinstance(body, dict):
        return EMPTY_BODY

    atlas_doc = body.get("atlas_doc_format") or {}
    value = atlas_doc.get("value") if isinstance(atlas_doc, dict) else None
    if not value:
        return EMPTY_BODY

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.debug("Ignoring comment body with invalid JSON document")
            return EMPTY_BODY

    return _parse_node(value)


def extract_text(node: BodyNode) -> str:
    """Concatenate all text runs depth-first, in document order."""
    parts = []
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, TextNode):
            parts.append(current.text)
            continue
        stack.extend(reversed(current.children))
    return "".join(parts)


def truncate(text: str, max_length: int) -> str:
    """Trim ``text`` to ``max_length`` characters, ending with an ellipsis when cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + ELLIPSIS


def preview(node: BodyNode, max_length: int = 50) -> str:
    """Return trimmed body text truncated to ``max_length``, or ``"(no content)"``."""
    text = extract_text(node).strip()
    if not text:
        return NO_CONTENT
    return truncate(text, max_length)
