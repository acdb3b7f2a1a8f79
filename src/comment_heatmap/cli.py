"""Command-line argument parsing for the comment heatmap."""

from __future__ import annotations

import argparse
import os

from .config import STATUS_OPEN, VALID_STATUSES


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for heatmap generation.

    Returns:
        Parsed CLI arguments containing site URL, page id, status filter,
        thread limit, output path and verbosity.
    """
    parser = argparse.ArgumentParser(
        prog="comment-heatmap",
        description=(
            "Rank the inline comment threads of a Confluence page and write the page "
            "with tier-colored comment highlights."
        ),
    )

    parser.add_argument(
        "--base-url",
        default=os.getenv("CONFLUENCE_BASE_URL", ""),
        help="Confluence site URL, e.g. https://example.atlassian.net (default: $CONFLUENCE_BASE_URL).",
    )
    parser.add_argument(
        "--page-id",
        required=True,
        help="Identifier of the Confluence page to analyze.",
    )
    parser.add_argument(
        "--status",
        choices=VALID_STATUSES,
        default=STATUS_OPEN,
        help="Resolution status of the threads to include (default: open).",
    )
    parser.add_argument(
        "--max-items",
        type=_positive_int,
        default=None,
        help="Maximum number of threads to report (default: all).",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the annotated page HTML to this file.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args()
