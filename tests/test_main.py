"""Tests for application orchestration in the main module."""

import asyncio
import sys
from argparse import Namespace
from pathlib import Path
from unittest.mock import Mock, patch

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from comment_heatmap.config import Config
from comment_heatmap.errors import ApiError, AuthenticationError, ConfigurationError, PageLoadError
from comment_heatmap.main import orchestrate_heatmap, resolve_reviewers, write_annotated_page
from comment_heatmap.models import Comment, LoadedPage, Page, UserCommentCount, UserIdentity
from comment_heatmap.user_cache import UserCache


def _args(output=None) -> Namespace:
    return Namespace(
        base_url="https://example.atlassian.net",
        page_id="42",
        status="open",
        max_items=5,
        output=output,
        verbose=False,
    )


def _config() -> Config:
    return Config(
        base_url="https://example.atlassian.net",
        page_id="42",
        status="open",
        max_items=5,
        email="me@example.com",
        api_token="secret",
    )


def _loaded() -> LoadedPage:
    return LoadedPage(
        page=Page(id="42", title="Design Doc", storage_markup="<p>x</p>"),
        comments=(
            Comment(id="c1", authorId="u1", resolutionStatus="open", markerRef="m1", originalSelection="x"),
            Comment(id="c2", parentCommentId="c1", authorId="u2"),
        ),
        color_map={"m1": 3},
        html='<p><span class="conf-inline-comment comment-rank-3" data-marker-ref="m1">x</span></p>',
    )


def _confluence_client() -> Mock:
    client = Mock()
    client.base_url = "https://example.atlassian.net"
    client.lookup_user.side_effect = lambda account_id: UserIdentity(
        display_name=f"Name {account_id}", avatar_path=None
    )
    return client


def test_orchestrate_heatmap_success(capsys):
    """Verify orchestration returns 0 and wires components correctly on success."""
    client = _confluence_client()

    with patch("comment_heatmap.main.parse_args", return_value=_args()) as parse_args_mock, patch(
        "comment_heatmap.main.load_config", return_value=_config()
    ) as load_config_mock, patch(
        "comment_heatmap.main.ConfluenceClient", return_value=client
    ) as client_ctor_mock, patch(
        "comment_heatmap.main.load_page", return_value=_loaded()
    ) as load_page_mock, patch(
        "comment_heatmap.main.generate_report", return_value="REPORT"
    ) as report_mock:
        exit_code = orchestrate_heatmap()

    assert exit_code == 0
    parse_args_mock.assert_called_once_with()
    load_config_mock.assert_called_once_with(
        base_url="https://example.atlassian.net",
        page_id="42",
        status="open",
        max_items=5,
    )
    client_ctor_mock.assert_called_once_with(config=load_config_mock.return_value)
    load_page_mock.assert_called_once_with(client, "42", "open")

    report_kwargs = report_mock.call_args.kwargs
    assert report_kwargs["page_title"] == "Design Doc"
    assert report_kwargs["status"] == "open"
    assert [thread.root.id for thread in report_kwargs["threads"]] == ["c1"]
    assert [item.author_id for item in report_kwargs["user_counts"]] == ["u1", "u2"]
    assert report_kwargs["users"]["u2"].display_name == "Name u2"

    output = capsys.readouterr().out
    assert "Fetching page '42' and its inline comments..." in output
    assert "REPORT" in output


def test_orchestrate_heatmap_writes_annotated_page(tmp_path, capsys):
    """Verify --output writes the page with commented blocks tagged."""
    output_path = tmp_path / "page.html"

    with patch("comment_heatmap.main.parse_args", return_value=_args(str(output_path))), patch(
        "comment_heatmap.main.load_config", return_value=_config()
    ), patch("comment_heatmap.main.ConfluenceClient", return_value=_confluence_client()), patch(
        "comment_heatmap.main.load_page", return_value=_loaded()
    ), patch("comment_heatmap.main.generate_report", return_value="REPORT"):
        exit_code = orchestrate_heatmap()

    assert exit_code == 0
    written = output_path.read_text(encoding="utf-8")
    assert 'class="conf-has-comment"' in written
    assert "(1 commented blocks)" in capsys.readouterr().out


def test_orchestrate_heatmap_configuration_error_returns_config_exit_code(capsys):
    """Verify invalid configuration returns the configuration exit code."""
    with patch("comment_heatmap.main.parse_args", return_value=_args()), patch(
        "comment_heatmap.main.load_config",
        side_effect=ConfigurationError("Missing Confluence base URL."),
    ):
        exit_code = orchestrate_heatmap()

    assert exit_code == 2
    assert "Missing Confluence base URL." in capsys.readouterr().err


def test_orchestrate_heatmap_missing_token_returns_auth_error():
    """Verify missing API token failures return the authentication exit code."""
    with patch("comment_heatmap.main.parse_args", return_value=_args()), patch(
        "comment_heatmap.main.load_config",
        side_effect=AuthenticationError("Missing required Confluence API token."),
    ):
        exit_code = orchestrate_heatmap()

    assert exit_code == 3


def test_orchestrate_heatmap_page_load_error_returns_api_exit_code():
    """Verify Confluence API failures return the API error exit code."""
    with patch("comment_heatmap.main.parse_args", return_value=_args()), patch(
        "comment_heatmap.main.load_config", return_value=_config()
    ), patch("comment_heatmap.main.ConfluenceClient", return_value=_confluence_client()), patch(
        "comment_heatmap.main.load_page", side_effect=PageLoadError("Failed to load page: HTTP 404")
    ):
        exit_code = orchestrate_heatmap()

    assert exit_code == 4


def test_orchestrate_heatmap_unexpected_error_returns_generic_exit_code():
    """Verify unexpected exceptions are mapped to the generic non-zero exit code."""
    with patch("comment_heatmap.main.parse_args", side_effect=RuntimeError("boom")):
        exit_code = orchestrate_heatmap()

    assert exit_code == 1


def test_resolve_reviewers_maps_ids_to_identities():
    """Verify reviewer identities are keyed by author id, with failures as Unknown User."""

    async def _lookup(user_id):
        if user_id == "bad":
            raise ApiError("HTTP 404")
        return UserIdentity(display_name=f"Name {user_id}", avatar_path=None)

    counts = [UserCommentCount(author_id="u1", comment_count=2), UserCommentCount(author_id="bad", comment_count=1)]

    users = asyncio.run(resolve_reviewers(UserCache(_lookup), counts))

    assert users["u1"].display_name == "Name u1"
    assert users["bad"].display_name == "Unknown User"


def test_write_annotated_page_returns_tagged_block_count(tmp_path):
    """Verify the written page tags each block holding a marker once."""
    output_path = tmp_path / "out.html"
    html = (
        '<p><span class="conf-inline-comment" data-marker-ref="a">a</span>'
        '<span class="conf-inline-comment" data-marker-ref="b">b</span></p><p>plain</p>'
    )

    tagged = write_annotated_page(html, str(output_path))

    assert tagged == 1
    assert output_path.read_text(encoding="utf-8").count("conf-has-comment") == 1
