"""Statistics and formatting helpers for comment heatmap reporting.

This module provides utilities for:
- Computing linear-interpolation percentiles from pre-sorted samples.
- Summarising thread sizes (P50, P75, P90, max, count).
- Building a human-readable report of ranked threads and active reviewers.
"""

from __future__ import annotations

import math
from typing import Dict, List, Mapping, Optional, Sequence

from .models import EnrichedUser, ScoredThread, UserCommentCount
from .ranking import comment_label, comment_preview
from .user_cache import UNKNOWN_USER


def calculate_percentile(sorted_values: List[float], p: float) -> Optional[float]:
    """Calculate a percentile using linear interpolation.

    The input sequence is expected to already be sorted in ascending order.
    - Empty input returns ``None``.
    - ``p <= 0`` returns the first value.
    - ``p >= 100`` returns the last value.
    - Otherwise, percentile is linearly interpolated between adjacent ranks.

    Raises:
        ValueError: If ``p`` is outside ``[0, 100]``.
    """
    if not 0 <= p <= 100:
        raise ValueError("Percentile 'p' must be in the range [0, 100].")

    if not sorted_values:
        return None

    if p <= 0:
        return sorted_values[0]

    if p >= 100:
        return sorted_values[-1]

    position = (len(sorted_values) - 1) * (p / 100.0)
    lower_index = math.floor(position)
    upper_index = math.ceil(position)

    if lower_index == upper_index:
        return sorted_values[int(position)]

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]
    return lower_value + (upper_value - lower_value) * (position - lower_index)


def compute_thread_statistics(threads: Sequence[ScoredThread]) -> Dict[str, Optional[float]]:
    """Compute P50, P75, P90, maximum and count of thread sizes.

    Returns:
        Dictionary with keys ``p50``, ``p75``, ``p90``, ``max`` and ``count``.
        Percentiles and ``max`` are ``None`` when there are no threads.
    """
    sizes = sorted(float(thread.thread_size) for thread in threads)
    return {
        "p50": calculate_percentile(sizes, 50),
        "p75": calculate_percentile(sizes, 75),
        "p90": calculate_percentile(sizes, 90),
        "max": sizes[-1] if sizes else None,
        "count": float(len(sizes)),
    }


def format_number(value: Optional[float]) -> str:
    """Format a statistic, dropping a trailing ``.0`` and using ``n/a`` for ``None``."""
    if value is None:
        return "n/a"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def generate_report(
    page_title: str,
    threads: Sequence[ScoredThread],
    user_counts: Sequence[UserCommentCount],
    users: Mapping[str, EnrichedUser],
    status: str,
) -> str:
    """Generate a human-readable comment activity report for a page.

    The report includes thread-size statistics, one line per ranked thread
    (tier, size, participants, highlighted text, body preview) and one line per
    reviewer with their comment count.
    """
    stats = compute_thread_statistics(threads)

    lines = [
        f"Page: {page_title or '(untitled)'}",
        f"Inline Comment Report (status: {status})",
        "",
        "1) Thread Size",
        f"   Threads: {format_number(stats['count'])}",
        f"   P50: {format_number(stats['p50'])}",
        f"   P75: {format_number(stats['p75'])}",
        f"   P90: {format_number(stats['p90'])}",
        f"   Max: {format_number(stats['max'])}",
        "",
        "2) Most Discussed Threads",
    ]

    if not threads:
        lines.append("   No comment threads to show.")
    for position, thread in enumerate(threads, start=1):
        lines.append(
            f"   {position:>2}. [tier {thread.tier}] {thread.thread_size} comments, "
            f"{thread.participant_count} participants - "
            f"\"{comment_label(thread.root, 40)}\": {comment_preview(thread.root, 40)}"
        )

    lines.extend(["", "3) Comments by Reviewer"])
    if not user_counts:
        lines.append("   No reviewers to show.")
    for item in user_counts:
        user = users.get(item.author_id)
        name = user.display_name if user is not None else UNKNOWN_USER
        lines.append(f"   {name}: {item.comment_count}")

    return "\n".join(lines)
