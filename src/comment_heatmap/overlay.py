"""Thread-detail popup controller.

The controller is a small state machine driven from one asyncio event loop:

- ``CLOSED``: nothing shown. ``open`` moves to ``OPENING``.
- ``OPENING``: the marker is located, its thread gathered and authors enriched.
  Success moves to ``OPEN``; a missing marker or empty thread returns to
  ``CLOSED``. A newer ``open`` for another marker supersedes the attempt.
- ``OPEN``: scroll events reposition the popup (at most once per frame); outside
  clicks close it; opening a different marker goes straight to ``OPENING``.
- ``CLOSING``: a short lock window after ``close`` during which opens are ignored.

Every open attempt gets an increasing operation id and its own cancellation token.
After each await the attempt re-checks both and discards its result when stale.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Set

from .models import Comment, EnrichedComment, PopupState
from .surface import CommentSurface
from .user_cache import UserCache

logger = logging.getLogger(__name__)

CLOSE_LOCK_SECONDS = 0.35
OPEN_LOCK_SECONDS = 0.05
FRAME_SECONDS = 1 / 60


class OverlayState(enum.Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


class CancellationToken:
    """Cooperative cancellation flag handed to one open attempt."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def collect_thread_comments(marker_ref: str, comments: Sequence[Comment]) -> List[Comment]:
    """Return the root comments anchored at ``marker_ref`` plus all transitive replies.

    Replies need not sit next to their root in ``comments``, so the closure is
    computed breadth-first over a parent-to-children index. Output keeps input order.
    """
    children: Dict[str, List[str]] = {}
    for comment in comments:
        if comment.parentCommentId:
            children.setdefault(comment.parentCommentId, []).append(comment.id)

    related: Set[str] = set()
    queue = deque(comment.id for comment in comments if comment.markerRef == marker_ref)
    while queue:
        comment_id = queue.popleft()
        if comment_id in related:
            continue
        related.add(comment_id)
        queue.extend(children.get(comment_id, []))

    return [comment for comment in comments if comment.id in related]


class OverlayController:
    """Open, reposition and close the popup for one rendered page."""

    def __init__(
        self,
        comments: Sequence[Comment],
        user_cache: UserCache,
        surface: CommentSurface,
        close_lock_seconds: float = CLOSE_LOCK_SECONDS,
        open_lock_seconds: float = OPEN_LOCK_SECONDS,
        frame_seconds: float = FRAME_SECONDS,
    ) -> None:
        self._comments = tuple(comments)
        self._user_cache = user_cache
        self._surface = surface
        self._close_lock_seconds = close_lock_seconds
        self._open_lock_seconds = open_lock_seconds
        self._frame_seconds = frame_seconds

        self._state = OverlayState.CLOSED
        self._popup = PopupState()
        self._operation_id = 0
        self._token: Optional[CancellationToken] = None
        self._opening_ref: Optional[str] = None
        self._locked = False
        self._lock_handle: Optional[asyncio.TimerHandle] = None
        self._frame_handle: Optional[asyncio.TimerHandle] = None
        self._torn_down = False

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def operation_id(self) -> int:
        return self._operation_id

    @property
    def locked(self) -> bool:
        return self._locked

    def snapshot(self) -> PopupState:
        return self._popup

    def _start_lock(self, seconds: float) -> None:
        if self._lock_handle is not None:
            self._lock_handle.cancel()
        self._locked = True
        loop = asyncio.get_running_loop()
        self._lock_handle = loop.call_later(seconds, self._release_lock)

    def _release_lock(self) -> None:
        self._lock_handle = None
        self._locked = False
        if self._state is OverlayState.CLOSING:
            self._state = OverlayState.CLOSED

    def _abandon(self, operation_id: int) -> None:
        if operation_id != self._operation_id:
            return
        self._token = None
        self._opening_ref = None
        self._popup = PopupState()
        self._state = OverlayState.CLOSED

    def _is_current(self, operation_id: int, token: CancellationToken) -> bool:
        return not self._torn_down and not token.cancelled and operation_id == self._operation_id

    async def open(self, marker_ref: str) -> bool:
        """Open the popup for ``marker_ref``; returns whether this attempt was shown.

        Must be awaited on the event loop that owns the controller.
        """
        if self._torn_down or not marker_ref:
            return False

        if self._locked:
            logger.debug("Ignoring popup open during lock window", extra={"marker_ref": marker_ref})
            return False

        if self._state is OverlayState.OPEN and self._popup.marker_ref == marker_ref:
            return False
        if self._state is OverlayState.OPENING and self._opening_ref == marker_ref:
            return False

        if self._token is not None:
            self._token.cancel()
        self._operation_id += 1
        operation_id = self._operation_id
        token = CancellationToken()
        self._token = token
        self._opening_ref = marker_ref

        if self._state is OverlayState.OPEN:
            self._popup = PopupState()
            self._surface.set_active_block(None)
        self._state = OverlayState.OPENING

        target = self._surface.find_marker(marker_ref)
        if target is None:
            logger.warning("Comment marker element not found", extra={"marker_ref": marker_ref})
            self._abandon(operation_id)
            return False

        related = collect_thread_comments(marker_ref, self._comments)
        if not related:
            logger.info("No comments resolved for marker", extra={"marker_ref": marker_ref})
            self._abandon(operation_id)
            return False

        users = await self._user_cache.get_many([comment.authorId for comment in related])

        if not self._is_current(operation_id, token):
            logger.debug(
                "Discarding stale popup operation",
                extra={"marker_ref": marker_ref, "operation_id": operation_id},
            )
            return False

        self._popup = PopupState(
            visible=True,
            anchor_y=self._surface.bounding_top(target),
            marker_ref=marker_ref,
            comments=tuple(EnrichedComment(comment=comment, user=user) for comment, user in zip(related, users)),
            target=target,
        )
        self._state = OverlayState.OPEN
        self._token = None
        self._opening_ref = None
        self._surface.set_active_block(self._surface.containing_block(target))
        self._start_lock(self._open_lock_seconds)
        return True

    def close(self) -> None:
        """Hide the popup and start the close lock window."""
        if self._torn_down:
            return

        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._operation_id += 1
        self._opening_ref = None
        self._cancel_frame()
        self._popup = PopupState()
        self._surface.set_active_block(None)
        self._state = OverlayState.CLOSING
        self._start_lock(self._close_lock_seconds)

    def handle_click(self, target: Any) -> bool:
        """Close the popup for a click outside it and outside any comment; returns whether it closed."""
        if not self._popup.visible:
            return False
        if self._surface.is_overlay_target(target):
            return False
        self.close()
        return True

    def on_scroll(self) -> None:
        """Schedule one reposition for the next frame, coalescing repeated scrolls."""
        if not self._popup.visible or self._popup.target is None or self._frame_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._frame_handle = loop.call_later(self._frame_seconds, self._reposition)

    def _reposition(self) -> None:
        self._frame_handle = None
        if not self._popup.visible or self._popup.target is None:
            return
        self._popup = replace(self._popup, anchor_y=self._surface.bounding_top(self._popup.target))

    def _cancel_frame(self) -> None:
        if self._frame_handle is not None:
            self._frame_handle.cancel()
            self._frame_handle = None

    def teardown(self) -> None:
        """Cancel timers and in-flight work; later completions are dropped."""
        self._torn_down = True
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._lock_handle is not None:
            self._lock_handle.cancel()
            self._lock_handle = None
        self._cancel_frame()
        self._locked = False
        self._opening_ref = None
        self._popup = PopupState()
        self._surface.set_active_block(None)
        self._state = OverlayState.CLOSED
