"""Tests for marker color mapping and storage markup transforms."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from comment_heatmap.markup import (
    annotate_document,
    attachment_url,
    build_marker_color_map,
    convert_images,
    render_page,
    sanitize_markup,
    tier_css_class,
)
from comment_heatmap.models import Comment


def _comment(
    comment_id: str,
    parent: str | None = None,
    status: str | None = "open",
    marker: str | None = None,
) -> Comment:
    return Comment(id=comment_id, parentCommentId=parent, resolutionStatus=status, markerRef=marker)


def test_build_marker_color_map_assigns_tiers_by_rank():
    """Verify the busiest thread's marker gets the highest tier."""
    comments = [
        _comment("1", marker="m1"),
        _comment("2", marker="m2"),
        _comment("3", parent="2"),
        _comment("4", parent="2"),
        _comment("5", marker="m3"),
        _comment("6", parent="5"),
        _comment("7", marker="m4"),
    ]

    color_map = build_marker_color_map(comments, "open")

    assert color_map == {"m2": 3, "m3": 2, "m1": 1, "m4": 0}


def test_build_marker_color_map_skips_roots_without_marker_and_other_statuses():
    """Verify unanchored roots and filtered threads are left out."""
    comments = [
        _comment("1", marker=None),
        _comment("2", marker="resolved-marker", status="resolved"),
        _comment("3", marker="m3"),
    ]

    color_map = build_marker_color_map(comments, "open")

    assert color_map == {"m3": 2}


def test_build_marker_color_map_shared_marker_keeps_higher_tier():
    """Verify the higher-ranked thread keeps a marker two threads share."""
    comments = [
        _comment("1", marker="shared"),
        _comment("2", parent="1"),
        _comment("3", marker="shared"),
    ]

    assert build_marker_color_map(comments, "open") == {"shared": 3}


def test_build_marker_color_map_empty_comments_returns_empty_map():
    """Verify no comments yields an empty map."""
    assert build_marker_color_map([], "open") == {}


def test_annotate_document_replaces_markers_with_tiered_spans():
    """Verify marker tags become spans carrying the ref and tier class."""
    markup = (
        '<p>Intro <ac:inline-comment-marker ac:ref="m1">hot text</ac:inline-comment-marker> and '
        '<ac:inline-comment-marker ac:ref="m2">cold</ac:inline-comment-marker></p>'
    )

    annotated = annotate_document(markup, {"m1": 3})

    assert '<span class="conf-inline-comment comment-rank-3" data-marker-ref="m1">hot text</span>' in annotated
    assert '<span class="conf-inline-comment comment-rank-0" data-marker-ref="m2">cold</span>' in annotated
    assert "ac:inline-comment-marker" not in annotated


def test_annotate_document_keeps_nested_markup_inside_marker():
    """Verify markup inside a marker is preserved."""
    markup = '<p><ac:inline-comment-marker ac:ref="m1"><strong>bold</strong></ac:inline-comment-marker></p>'

    annotated = annotate_document(markup, {})

    assert '<strong>bold</strong></span>' in annotated


def test_annotate_document_escapes_marker_ref():
    """Verify marker refs are attribute-escaped."""
    markup = '<ac:inline-comment-marker ac:ref="a&lt;b">x</ac:inline-comment-marker>'

    annotated = annotate_document(markup, {"a<b": 2})

    assert 'data-marker-ref="a&lt;b"' in annotated
    assert "comment-rank-2" in annotated


def test_annotate_document_empty_markup_returns_empty_string():
    """Verify empty markup yields an empty string."""
    assert annotate_document("", {"m1": 3}) == ""


def test_convert_images_builds_attachment_urls():
    """Verify image macros become img tags pointing at the page attachment."""
    markup = '<p><ac:image ac:width="200"><ri:attachment ri:filename="diagram one.png" /></ac:image></p>'

    converted = convert_images(markup, "123", "https://example.atlassian.net")

    assert (
        '<img src="https://example.atlassian.net/wiki/download/attachments/123/diagram%20one.png?api=v2" '
        'class="conf-img" alt="diagram one.png" />'
    ) in converted


def test_convert_images_drops_macros_without_filename():
    """Verify image macros without an attachment filename are removed."""
    markup = '<p>a<ac:image><ri:url ri:value="https://x/y.png" /></ac:image>b</p>'

    assert convert_images(markup, "1", "https://site") == "<p>ab</p>"


def test_render_page_applies_both_transforms():
    """Verify rendering annotates markers and converts images."""
    markup = (
        '<p><ac:inline-comment-marker ac:ref="m1">x</ac:inline-comment-marker></p>'
        '<ac:image><ri:attachment ri:filename="a.png" /></ac:image>'
    )

    rendered = render_page(markup, {"m1": 1}, "9", "https://site")

    assert "comment-rank-1" in rendered
    assert attachment_url("https://site", "9", "a.png") in rendered


def test_tier_css_class():
    """Verify tier classes follow the comment-rank naming."""
    assert tier_css_class(0) == "comment-rank-0"
    assert tier_css_class(3) == "comment-rank-3"


def test_sanitize_markup_removes_scripts_and_event_handlers():
    """Verify script elements and inline handlers never reach the rendered page."""
    sanitized = sanitize_markup('<p>hi</p><script>alert(1)</script><img src=x onerror="alert(2)">')

    assert "<script" not in sanitized
    assert "alert(1)" not in sanitized
    assert "onerror" not in sanitized
    assert "<p>hi</p>" in sanitized
    assert 'src="x"' in sanitized


def test_sanitize_markup_drops_javascript_urls():
    """Verify links with a script scheme lose their href but keep their text."""
    sanitized = sanitize_markup(
        '<a href=" JavaScript:alert(1)">bad</a><a href="https://example.com/x">good</a>'
    )

    assert "javascript" not in sanitized.lower()
    assert "<a>bad</a>" in sanitized
    assert 'href="https://example.com/x"' in sanitized


def test_sanitize_markup_unwraps_unknown_elements_and_strips_comments():
    """Verify unknown elements keep their content while HTML comments are removed."""
    sanitized = sanitize_markup("<ac:structured-macro><p>kept</p></ac:structured-macro><!-- hidden -->")

    assert sanitized == "<p>kept</p>"


def test_sanitize_markup_keeps_comment_markers_and_image_macros():
    """Verify the Confluence elements needed by later transforms survive."""
    sanitized = sanitize_markup(
        '<p><ac:inline-comment-marker ac:ref="m1" onclick="x()">x</ac:inline-comment-marker></p>'
        '<ac:image ac:width="300"><ri:attachment ri:filename="a.png" /></ac:image>'
    )

    assert '<ac:inline-comment-marker ac:ref="m1">x</ac:inline-comment-marker>' in sanitized
    assert 'ri:filename="a.png"' in sanitized
    assert "ac:width" not in sanitized
    assert "onclick" not in sanitized


def test_render_page_sanitizes_before_annotating():
    """Verify the rendered page carries highlights and images but no script."""
    markup = (
        '<p><ac:inline-comment-marker ac:ref="m1">x</ac:inline-comment-marker></p>'
        '<script>alert(1)</script><img src=x onerror="alert(2)">'
        '<ac:image><ri:attachment ri:filename="a.png" /></ac:image>'
    )

    rendered = render_page(markup, {"m1": 2}, "9", "https://site")

    assert "<script" not in rendered
    assert "onerror" not in rendered
    assert 'class="conf-inline-comment comment-rank-2" data-marker-ref="m1"' in rendered
    assert attachment_url("https://site", "9", "a.png") in rendered


def test_sanitize_markup_empty_returns_empty_string():
    """Verify empty input stays empty."""
    assert sanitize_markup("") == ""
