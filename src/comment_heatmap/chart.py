"""Chart-ready series for the thread replies chart and the per-reviewer chart."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from .config import STATUS_OPEN
from .models import Comment, EnrichedUser, ScoredThread, UserCommentCount
from .ranking import comment_label, most_commented_user, rank, score
from .surface import CommentSurface
from .user_cache import UNKNOWN_USER

# Bar colors per tier, matching the inline highlight classes.
RANK_COLORS = {
    0: "#f5ec8e",
    1: "#f7b457",
    2: "#FE7440",
    3: "#FE2923",
}
REVIEWER_COLOR = "#0052CC"

BAR_HEIGHT = 32
CHART_PADDING = 60
MIN_CHART_HEIGHT = 200


@dataclass(frozen=True)
class RepliesChart:
    """Bars for the most discussed threads, smallest first for bottom-up rendering."""

    labels: Tuple[str, ...]
    values: Tuple[int, ...]
    colors: Tuple[str, ...]
    participant_counts: Tuple[int, ...]
    marker_refs: Tuple[Optional[str], ...]
    top_commenters: Tuple[Optional[str], ...]
    height: int


@dataclass(frozen=True)
class ReviewerChart:
    labels: Tuple[str, ...]
    values: Tuple[int, ...]
    color: str
    height: int


def chart_height(bars: int) -> int:
    return max(MIN_CHART_HEIGHT, bars * BAR_HEIGHT + CHART_PADDING)


def top_threads(
    comments: Sequence[Comment],
    status: str = STATUS_OPEN,
    max_items: Optional[int] = None,
) -> List[ScoredThread]:
    """Rank, keep the top ``max_items`` threads, then score what will be displayed."""
    ranked = rank(comments, status)
    if max_items is not None:
        ranked = ranked[:max_items]
    return score(ranked)


def build_replies_chart(
    comments: Sequence[Comment],
    status: str = STATUS_OPEN,
    max_items: Optional[int] = None,
) -> Optional[RepliesChart]:
    """Build the replies chart, or ``None`` when no thread matches ``status``.

    Tiers are computed over the displayed threads only. Clicking a bar opens the
    popup for its ``marker_refs`` entry.
    """
    scored = top_threads(comments, status, max_items)
    if not scored:
        return None

    displayed = list(reversed(scored))
    return RepliesChart(
        labels=tuple(comment_label(thread.root, 20) for thread in displayed),
        values=tuple(thread.thread_size for thread in displayed),
        colors=tuple(RANK_COLORS.get(thread.tier, RANK_COLORS[0]) for thread in displayed),
        participant_counts=tuple(thread.participant_count for thread in displayed),
        marker_refs=tuple(thread.root.markerRef for thread in displayed),
        top_commenters=tuple(most_commented_user(thread.root) for thread in displayed),
        height=chart_height(len(displayed)),
    )


def build_reviewer_chart(
    user_counts: Sequence[UserCommentCount],
    users: Mapping[str, EnrichedUser],
    max_items: Optional[int] = None,
) -> Optional[ReviewerChart]:
    """Build the per-reviewer chart from counts and their enriched identities.

    ``users`` maps author ids to identities, as returned by ``resolve_reviewers``;
    authors missing from it are labelled ``Unknown User``.
    """
    counts = list(user_counts)
    if max_items is not None:
        counts = counts[:max_items]
    if not counts:
        return None

    displayed = list(reversed(counts))
    labels = []
    for item in displayed:
        user = users.get(item.author_id)
        labels.append(user.display_name if user is not None else UNKNOWN_USER)

    return ReviewerChart(
        labels=tuple(labels),
        values=tuple(item.comment_count for item in displayed),
        color=REVIEWER_COLOR,
        height=chart_height(len(displayed)),
    )


def reveal_thread(chart: RepliesChart, index: int, surface: CommentSurface) -> bool:
    """Scroll the page to the comment behind bar ``index``; returns whether it scrolled."""
    if not 0 <= index < len(chart.marker_refs):
        return False
    marker_ref = chart.marker_refs[index]
    if not marker_ref:
        return False
    return surface.scroll_to_marker(marker_ref)
