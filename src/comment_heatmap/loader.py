"""Page loading: fetch, rank and annotate one Confluence page."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .config import STATUS_OPEN
from .confluence_client import ConfluenceClient
from .errors import HeatmapError, PageLoadError
from .markup import build_marker_color_map, render_page
from .models import Comment, LoadedPage, Page

logger = logging.getLogger(__name__)


def load_page(client: ConfluenceClient, page_id: str, status: str = STATUS_OPEN) -> LoadedPage:
    """Fetch a page and its inline comments and build the annotated markup.

    Business logic:
    - Fetch the page body, then every inline comment on it.
    - Rank threads for ``status`` and map each marker to its tier.
    - Replace markers with tiered highlight spans and image macros with ``<img>``.

    Raises:
        PageLoadError: Wrapping any fetch or payload failure, so callers can show a
            single descriptive message and offer a manual reload.
    """
    if not page_id:
        raise PageLoadError("Failed to load page: missing page id.")

    try:
        page: Page = client.get_page(page_id)
        comments: List[Comment] = client.list_inline_comments(page_id)
    except HeatmapError as exc:
        raise PageLoadError(f"Failed to load page: {exc}") from exc

    color_map = build_marker_color_map(comments, status)
    html = render_page(page.storage_markup, color_map, page.id, client.base_url)

    logger.info(
        "Loaded page",
        extra={
            "page_id": page.id,
            "comments_total": len(comments),
            "markers_colored": len(color_map),
        },
    )

    return LoadedPage(page=page, comments=tuple(comments), color_map=color_map, html=html)


class PageSession:
    """Holds the current page of a view and drops results of superseded loads."""

    def __init__(self, client: ConfluenceClient, status: str = STATUS_OPEN) -> None:
        self._client = client
        self._status = status
        self._request_id = 0
        self.current: Optional[LoadedPage] = None

    @property
    def request_id(self) -> int:
        return self._request_id

    async def load(self, page_id: str) -> Optional[LoadedPage]:
        """Load ``page_id`` on a worker thread.

        Returns ``None`` when a newer load started, or the session closed, before
        this one finished; ``current`` is only updated by the latest load.

        Raises:
            PageLoadError: If the latest load fails.
        """
        self._request_id += 1
        request_id = self._request_id

        try:
            loaded = await asyncio.to_thread(load_page, self._client, page_id, self._status)
        except PageLoadError:
            if request_id != self._request_id:
                logger.debug("Dropping failure of superseded page load", extra={"page_id": page_id})
                return None
            raise

        if request_id != self._request_id:
            logger.debug(
                "Dropping result of superseded page load",
                extra={"page_id": page_id, "request_id": request_id},
            )
            return None

        self.current = loaded
        return loaded

    def close(self) -> None:
        """Invalidate every load still in flight."""
        self._request_id += 1
        self.current = None
