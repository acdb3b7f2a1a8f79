"""Domain models for inline comment analytics.

Source payloads are converted into frozen dataclasses once, at the API boundary.
Everything downstream derives new structures and never mutates a ``Comment``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .body import EMPTY_BODY, NO_CONTENT, BodyNode, extract_text

NO_SELECTION = "(no selection)"


@dataclass(frozen=True)
class Page:
    """A Confluence page and its raw storage-format markup."""

    id: str
    title: str
    storage_markup: str


@dataclass(frozen=True)
class Comment:
    """An inline comment exactly as received from the comment source."""

    id: str
    parentCommentId: Optional[str] = None
    authorId: Optional[str] = None
    createdAt: Optional[datetime] = None
    body: BodyNode = EMPTY_BODY
    resolutionStatus: Optional[str] = None
    markerRef: Optional[str] = None
    originalSelection: Optional[str] = None
    pageId: Optional[str] = None


@dataclass(slots=True)
class CommentNode:
    """A comment placed in its thread, with replies in input order."""

    id: str
    parentId: Optional[str]
    authorId: Optional[str]
    createdAt: Optional[datetime]
    body: BodyNode
    resolutionStatus: Optional[str]
    markerRef: Optional[str]
    originalSelection: Optional[str]
    children: List["CommentNode"] = field(default_factory=list)

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentNode":
        return cls(
            id=comment.id,
            parentId=comment.parentCommentId,
            authorId=comment.authorId,
            createdAt=comment.createdAt,
            body=comment.body,
            resolutionStatus=comment.resolutionStatus,
            markerRef=comment.markerRef,
            originalSelection=comment.originalSelection,
        )


@dataclass(slots=True)
class CommentTree:
    """A forest of comment threads."""

    roots: List[CommentNode]


@dataclass(frozen=True)
class ThreadSummary:
    """Size and participants of one thread, rooted at ``root``."""

    root: CommentNode
    thread_size: int
    participant_ids: Tuple[str, ...]

    @property
    def participant_count(self) -> int:
        return len(self.participant_ids)


@dataclass(frozen=True)
class ScoredThread:
    """A ranked thread with its visual intensity tier (0 lowest, 3 highest)."""

    summary: ThreadSummary
    tier: int

    @property
    def root(self) -> CommentNode:
        return self.summary.root

    @property
    def thread_size(self) -> int:
        return self.summary.thread_size

    @property
    def participant_count(self) -> int:
        return self.summary.participant_count


@dataclass(frozen=True)
class UserIdentity:
    """Identity source answer for one account id."""

    display_name: Optional[str]
    avatar_path: Optional[str]


@dataclass(frozen=True)
class EnrichedUser:
    """Human-readable author identity."""

    user_id: Optional[str]
    display_name: str
    avatar_url: str


@dataclass(frozen=True)
class EnrichedComment:
    """A comment shown in the thread popup, with its resolved author."""

    comment: Comment
    user: EnrichedUser

    @property
    def text(self) -> str:
        text = extract_text(self.comment.body).strip()
        return text or NO_CONTENT

    @property
    def selection(self) -> str:
        selection = (self.comment.originalSelection or "").strip()
        return selection or NO_SELECTION


@dataclass(frozen=True)
class UserCommentCount:
    """Number of comments one author wrote across the filtered threads."""

    author_id: str
    comment_count: int


@dataclass(frozen=True)
class PopupState:
    """Snapshot of the thread-detail popup."""

    visible: bool = False
    anchor_y: float = 0.0
    marker_ref: Optional[str] = None
    comments: Tuple[EnrichedComment, ...] = ()
    target: Any = None


@dataclass(frozen=True)
class LoadedPage:
    """Result of one page load: source data plus annotated markup."""

    page: Page
    comments: Tuple[Comment, ...]
    color_map: Dict[str, int]
    html: str
