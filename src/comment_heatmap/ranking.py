"""Thread ranking, participant statistics and visual tiers.

This module turns a flat comment list into ranked thread summaries:
- ``rank`` filters roots by resolution status and orders threads by size.
- ``score`` buckets an already-ranked list into four quartile tiers.
- ``group_comments_by_user`` and ``most_commented_user`` describe who talked.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Set

from .body import preview, truncate
from .config import STATUS_ALL, STATUS_OPEN
from .models import (
    NO_SELECTION,
    Comment,
    CommentNode,
    ScoredThread,
    ThreadSummary,
    UserCommentCount,
)
from .tree import build_tree, count_replies, iter_subtree

logger = logging.getLogger(__name__)

TIER_COUNT = 4
MAX_TIER = TIER_COUNT - 1


def _matches_status(node: CommentNode, status: str) -> bool:
    if status == STATUS_ALL:
        return True
    return node.resolutionStatus == status


def collect_participants(root: CommentNode) -> List[str]:
    """Return unique author ids in a thread, in first-seen order.

    Nodes without an author contribute nothing.
    """
    seen: Set[str] = set()
    participants: List[str] = []
    for node in iter_subtree(root):
        if node.authorId and node.authorId not in seen:
            seen.add(node.authorId)
            participants.append(node.authorId)
    return participants


def summarize_thread(root: CommentNode) -> ThreadSummary:
    """Compute thread size and participants for one root comment."""
    return ThreadSummary(
        root=root,
        thread_size=1 + count_replies(root),
        participant_ids=tuple(collect_participants(root)),
    )


def rank(comments: Sequence[Comment], status: str = STATUS_OPEN) -> List[ThreadSummary]:
    """Rank threads whose root matches ``status`` by thread size, largest first.

    Thread size is ``1 + all transitive replies``. Ties keep the original root
    order. Roots without a status only match ``status="all"``. No matching roots
    yields an empty list, which callers treat as "nothing to show".
    """
    if not comments:
        return []

    tree = build_tree(comments)
    summaries = [summarize_thread(root) for root in tree.roots if _matches_status(root, status)]
    summaries.sort(key=lambda summary: summary.thread_size, reverse=True)

    logger.debug(
        "Ranked comment threads",
        extra={"status": status, "roots_total": len(tree.roots), "threads_ranked": len(summaries)},
    )
    return summaries


def tier_for_position(index: int, total: int) -> int:
    """Map a rank position to a quartile tier, 3 for the top quarter."""
    if total <= 0:
        raise ValueError("Cannot assign a tier within an empty ranking.")

    fraction = index / total
    if fraction < 0.25:
        return 3
    if fraction < 0.5:
        return 2
    if fraction < 0.75:
        return 1
    return 0


def score(ranked: Sequence[ThreadSummary]) -> List[ScoredThread]:
    """Attach a visual tier to each thread of an already-ranked list.

    Tiers depend only on position within ``ranked``, so they are relative to the
    threads actually displayed, not to absolute thread sizes.
    """
    total = len(ranked)
    return [
        ScoredThread(summary=summary, tier=tier_for_position(index, total))
        for index, summary in enumerate(ranked)
    ]


def group_comments_by_user(
    comments: Sequence[Comment],
    status: str = STATUS_OPEN,
) -> List[UserCommentCount]:
    """Count comments per author across every thread whose root matches ``status``.

    Roots and replies both count. Results are sorted by count, descending, with
    ties in first-seen order.
    """
    if not comments:
        return []

    tree = build_tree(comments)
    counts: Dict[str, int] = {}
    for root in tree.roots:
        if not _matches_status(root, status):
            continue
        for node in iter_subtree(root):
            if not node.authorId:
                continue
            counts[node.authorId] = counts.get(node.authorId, 0) + 1

    grouped = [UserCommentCount(author_id=author_id, comment_count=count) for author_id, count in counts.items()]
    grouped.sort(key=lambda item: item.comment_count, reverse=True)
    return grouped


def most_commented_user(root: CommentNode) -> Optional[str]:
    """Return the author with the most comments in a thread.

    Ties go to whoever commented first. ``None`` when no node has an author.
    """
    counts = Counter(node.authorId for node in iter_subtree(root) if node.authorId)
    if not counts:
        return None
    # Counter preserves insertion order, and most_common is stable for ties.
    return counts.most_common(1)[0][0]


def comment_label(node: CommentNode, max_length: int = 50) -> str:
    """Display label built from the text the reviewer highlighted."""
    text = node.originalSelection
    if not text or not isinstance(text, str) or not text.strip():
        return NO_SELECTION
    return truncate(text.strip(), max_length)


def comment_preview(node: CommentNode, max_length: int = 50) -> str:
    """Display preview of what the reviewer wrote."""
    return preview(node.body, max_length)
