"""Tests for chart series construction."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from comment_heatmap.chart import (
    RANK_COLORS,
    REVIEWER_COLOR,
    build_replies_chart,
    build_reviewer_chart,
    chart_height,
    reveal_thread,
    top_threads,
)
from comment_heatmap.models import Comment, EnrichedUser, UserCommentCount
from comment_heatmap.surface import SoupSurface


def _thread(root_id: str, size: int, status: str = "open", authors=("u1",)) -> list:
    comments = [
        Comment(
            id=root_id,
            authorId=authors[0],
            resolutionStatus=status,
            markerRef=f"m-{root_id}",
            originalSelection=f"selection for {root_id}",
        )
    ]
    for reply in range(size - 1):
        comments.append(
            Comment(id=f"{root_id}-{reply}", parentCommentId=root_id, authorId=authors[(reply + 1) % len(authors)])
        )
    return comments


def test_chart_height_has_minimum_and_grows_per_bar():
    """Verify chart height never drops below the minimum and scales with bars."""
    assert chart_height(0) == 200
    assert chart_height(4) == 200
    assert chart_height(10) == 380


def test_top_threads_scores_only_displayed_threads():
    """Verify tiers are computed after applying the item limit."""
    comments = _thread("a", 5) + _thread("b", 4) + _thread("c", 3) + _thread("d", 2)

    threads = top_threads(comments, "open", max_items=2)

    assert [thread.root.id for thread in threads] == ["a", "b"]
    assert [thread.tier for thread in threads] == [3, 1]


def test_build_replies_chart_orders_smallest_first_with_tier_colors():
    """Verify bars are reversed for bottom-up rendering and carry tier colors."""
    comments = _thread("a", 4, authors=("u1", "u2")) + _thread("b", 2) + _thread("z", 9, status="resolved")

    chart = build_replies_chart(comments, "open")

    assert chart.values == (2, 4)
    assert chart.labels == ("selection for b", "selection for a")
    assert chart.colors == (RANK_COLORS[1], RANK_COLORS[3])
    assert chart.marker_refs == ("m-b", "m-a")
    assert chart.participant_counts == (1, 2)
    assert chart.top_commenters == ("u1", "u1")
    assert chart.height == 200


def test_build_replies_chart_truncates_long_labels():
    """Verify labels are cut to twenty characters with an ellipsis."""
    comments = [
        Comment(id="a", resolutionStatus="open", markerRef="m", originalSelection="a" * 40),
    ]

    chart = build_replies_chart(comments)

    assert chart.labels == ("a" * 19 + "…",)


def test_build_replies_chart_without_matching_threads_returns_none():
    """Verify nothing is charted when no thread matches the status."""
    assert build_replies_chart(_thread("a", 2, status="resolved"), "open") is None
    assert build_replies_chart([], "all") is None


def test_build_reviewer_chart_uses_display_names_and_limit():
    """Verify reviewer bars use resolved names, respect the limit and reverse order."""
    counts = [
        UserCommentCount(author_id="u1", comment_count=5),
        UserCommentCount(author_id="u2", comment_count=3),
        UserCommentCount(author_id="u3", comment_count=1),
    ]
    users = {
        "u1": EnrichedUser(user_id="u1", display_name="Ada", avatar_url=""),
        "u2": EnrichedUser(user_id="u2", display_name="Grace", avatar_url=""),
    }

    chart = build_reviewer_chart(counts, users, max_items=2)

    assert chart.labels == ("Grace", "Ada")
    assert chart.values == (3, 5)
    assert chart.color == REVIEWER_COLOR


def test_build_reviewer_chart_labels_unresolved_authors_unknown():
    """Verify authors missing from the identity map are labelled Unknown User."""
    chart = build_reviewer_chart([UserCommentCount(author_id="ghost", comment_count=2)], {})

    assert chart.labels == ("Unknown User",)


def test_build_reviewer_chart_empty_returns_none():
    """Verify no reviewers yields no chart."""
    assert build_reviewer_chart([], {}) is None


def test_reveal_thread_scrolls_to_clicked_bar_marker():
    """Verify clicking a replies bar scrolls the page to that thread's marker."""
    comments = _thread("a", 3) + _thread("b", 2)
    chart = build_replies_chart(comments)
    page = "".join(f"<p>line {index}</p>" for index in range(30)) + (
        '<p><span class="conf-inline-comment" data-marker-ref="m-a">a</span></p>'
    )
    surface = SoupSurface(page, line_height=10.0, viewport_height=110.0)

    assert reveal_thread(chart, chart.marker_refs.index("m-a"), surface)
    assert surface.scroll_offset == 250.0


def test_reveal_thread_without_marker_or_out_of_range_does_nothing():
    """Verify bars without an anchor on the page, or invalid indexes, do not scroll."""
    chart = build_replies_chart(_thread("a", 2))
    surface = SoupSurface("<p>no markers</p>")

    assert not reveal_thread(chart, 0, surface)
    assert not reveal_thread(chart, 5, surface)
    assert surface.scroll_offset == 0.0
