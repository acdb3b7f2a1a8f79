"""Rendering-surface adapters.

The analytics modules never touch a rendered document. Everything that needs one
(tagging commented blocks, locating a marker, reading its position, focus styling)
goes through the :class:`CommentSurface` protocol, so a browser bridge or the
headless :class:`SoupSurface` can be swapped in.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Protocol, Union

from bs4 import BeautifulSoup, Tag

from .markup import MARKER_CLASS

logger = logging.getLogger(__name__)

COMMENTED_BLOCK_CLASS = "conf-has-comment"
ACTIVE_BLOCK_CLASS = "conf-has-comment-active"
POPUP_CLASS = "conf-comment-popup"
SIDEBAR_CLASSES = ("conf-sidebar", "conf-sidebar-toggle", "conf-sidebar-checkbox")

BLOCK_TAGS = [
    "p",
    "div",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "td",
    "th",
    "blockquote",
    "pre",
    "section",
    "article",
    "dt",
    "dd",
    "figcaption",
    "figure",
]

# Clicks landing on these never close an open popup.
_OVERLAY_SAFE_CLASSES = frozenset((POPUP_CLASS, MARKER_CLASS, COMMENTED_BLOCK_CLASS) + SIDEBAR_CLASSES)


class CommentSurface(Protocol):
    def mark_commented_blocks(self) -> int: ...

    def find_marker(self, marker_ref: str) -> Optional[Any]: ...

    def bounding_top(self, element: Any) -> float: ...

    def containing_block(self, element: Any) -> Optional[Any]: ...

    def set_active_block(self, block: Optional[Any]) -> None: ...

    def is_overlay_target(self, target: Any) -> bool: ...

    def scroll_to_marker(self, marker_ref: str) -> bool: ...


def mark_commented_blocks(surface: CommentSurface) -> int:
    """Tag every block that contains a comment anchor; returns blocks newly tagged."""
    return surface.mark_commented_blocks()


def _classes(tag: Tag) -> List[str]:
    value = tag.get("class") or []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _add_class(tag: Tag, name: str) -> bool:
    classes = _classes(tag)
    if name in classes:
        return False
    tag["class"] = classes + [name]
    return True


def _remove_class(tag: Tag, name: str) -> None:
    classes = [value for value in _classes(tag) if value != name]
    if classes:
        tag["class"] = classes
    else:
        del tag["class"]


def _self_and_ancestors(tag: Tag) -> Iterable[Tag]:
    yield tag
    for parent in tag.parents:
        if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup):
            yield parent


class SoupSurface:
    """Headless surface over a BeautifulSoup tree.

    Layout is modelled as one line of ``line_height`` pixels per block element, in
    document order, shifted by the current scroll offset. This is enough to drive
    popup positioning and scroll tracking without a browser.
    """

    def __init__(
        self,
        document: Union[str, BeautifulSoup],
        line_height: float = 20.0,
        viewport_height: float = 600.0,
    ) -> None:
        if isinstance(document, BeautifulSoup):
            self.soup = document
        else:
            self.soup = BeautifulSoup(document or "", "html.parser")
        self._line_height = line_height
        self._viewport_height = viewport_height
        self.scroll_offset = 0.0

    def markers(self) -> List[Tag]:
        return self.soup.find_all(class_=MARKER_CLASS)

    def mark_commented_blocks(self) -> int:
        """Tag the nearest block ancestor of every marker as commented, idempotently."""
        tagged = 0
        for marker in self.markers():
            block = marker.find_parent(BLOCK_TAGS)
            if block is not None and _add_class(block, COMMENTED_BLOCK_CLASS):
                tagged += 1

        logger.debug("Tagged commented blocks", extra={"blocks_tagged": tagged})
        return tagged

    def find_marker(self, marker_ref: str) -> Optional[Tag]:
        return self.soup.find(attrs={"data-marker-ref": marker_ref})

    def containing_block(self, element: Tag) -> Optional[Tag]:
        if element is None:
            return None
        return element.find_parent(class_=COMMENTED_BLOCK_CLASS)

    def scroll_to(self, offset: float) -> None:
        self.scroll_offset = float(offset)

    def scroll_to_marker(self, marker_ref: str) -> bool:
        """Center the marker's line in the viewport; returns whether the marker exists."""
        marker = self.find_marker(marker_ref) if marker_ref else None
        if marker is None:
            return False
        document_top = self.bounding_top(marker) + self.scroll_offset
        self.scroll_to(max(0.0, document_top - (self._viewport_height - self._line_height) / 2))
        return True

    def bounding_top(self, element: Tag) -> float:
        """Viewport top of ``element``'s line under the headless layout."""
        line = element if element.name in BLOCK_TAGS else element.find_parent(BLOCK_TAGS)
        blocks = self.soup.find_all(BLOCK_TAGS)
        index = 0
        for position, block in enumerate(blocks):
            if block is line:
                index = position
                break
        return index * self._line_height - self.scroll_offset

    def set_active_block(self, block: Optional[Tag]) -> None:
        for current in self.soup.find_all(class_=ACTIVE_BLOCK_CLASS):
            if current is not block:
                _remove_class(current, ACTIVE_BLOCK_CLASS)
        if block is not None:
            _add_class(block, ACTIVE_BLOCK_CLASS)

    def is_overlay_target(self, target: Any) -> bool:
        """Whether a click on ``target`` belongs to the popup, a comment, or the sidebar."""
        if not isinstance(target, Tag):
            return False
        for element in _self_and_ancestors(target):
            if _OVERLAY_SAFE_CLASSES.intersection(_classes(element)):
                return True
            if element.get("id") == "conf-sidebar-toggle":
                return True
        return False

    def render(self) -> str:
        return str(self.soup)
