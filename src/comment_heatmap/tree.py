"""Reconstruction of comment threads from a flat comment list."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Sequence

from .models import Comment, CommentNode, CommentTree

logger = logging.getLogger(__name__)


def build_tree(comments: Sequence[Comment]) -> CommentTree:
    """Build a forest of threads from a flat, loosely-ordered comment list.

    Business logic:
    - Pass 1 creates one node per comment, keyed by id.
    - Pass 2 appends each node to its parent's children, in input order.
    - A comment without a parent id, or whose parent is not in the input, becomes
      a root (orphan replies are promoted rather than dropped).

    The input is never mutated; an empty input yields an empty forest.
    """
    if not comments:
        return CommentTree(roots=[])

    nodes: Dict[str, CommentNode] = {}
    unique: List[Comment] = []
    for comment in comments:
        if comment.id in nodes:
            logger.debug("Skipping duplicate comment id", extra={"comment_id": comment.id})
            continue
        nodes[comment.id] = CommentNode.from_comment(comment)
        unique.append(comment)

    roots: List[CommentNode] = []
    orphans = 0

    for comment in unique:
        node = nodes[comment.id]
        if not comment.parentCommentId or comment.parentCommentId == comment.id:
            roots.append(node)
            continue

        parent = nodes.get(comment.parentCommentId)
        if parent is None:
            orphans += 1
            roots.append(node)
        else:
            parent.children.append(node)

    if orphans:
        logger.debug(
            "Promoted orphan replies to thread roots",
            extra={"orphans": orphans, "comments_total": len(comments)},
        )

    return CommentTree(roots=roots)


def iter_subtree(node: CommentNode) -> Iterator[CommentNode]:
    """Yield ``node`` and every descendant, depth-first in pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def count_replies(node: CommentNode) -> int:
    """Count all transitive replies below ``node``."""
    return sum(1 for _ in iter_subtree(node)) - 1
