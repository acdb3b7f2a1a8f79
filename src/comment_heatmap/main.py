"""Entry point for the comment heatmap CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, Sequence

from .chart import top_threads
from .cli import parse_args
from .config import load_config
from .confluence_client import ConfluenceClient
from .errors import ApiError, AuthenticationError, ConfigurationError, DataValidationError
from .loader import load_page
from .models import EnrichedUser, UserCommentCount
from .ranking import group_comments_by_user
from .stats import generate_report
from .surface import SoupSurface
from .user_cache import UserCache

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def resolve_reviewers(
    user_cache: UserCache,
    user_counts: Sequence[UserCommentCount],
) -> Dict[str, EnrichedUser]:
    """Resolve every reviewer's identity through the shared cache."""
    author_ids = [item.author_id for item in user_counts]
    users = await user_cache.get_many(author_ids)
    return dict(zip(author_ids, users))


def write_annotated_page(html: str, output_path: str) -> int:
    """Tag commented blocks and write the page; returns the number of blocks tagged."""
    surface = SoupSurface(html)
    tagged = surface.mark_commented_blocks()
    Path(output_path).write_text(surface.render(), encoding="utf-8")
    return tagged


def orchestrate_heatmap() -> int:
    """Run the heatmap workflow and map failures to exit codes.

    Returns:
        ``0`` on success, ``2`` for configuration errors, ``3`` for missing
        credentials, ``4`` for API or page load failures, ``1`` otherwise.
    """
    try:
        args = parse_args()
        configure_logging(args.verbose)

        config = load_config(
            base_url=args.base_url,
            page_id=args.page_id,
            status=args.status,
            max_items=args.max_items,
        )
        client = ConfluenceClient(config=config)

        print(f"Fetching page '{config.page_id}' and its inline comments...")
        loaded = load_page(client, config.page_id, config.status)

        threads = top_threads(loaded.comments, config.status, config.max_items)
        user_counts = group_comments_by_user(loaded.comments, config.status)
        users = asyncio.run(resolve_reviewers(UserCache.from_client(client), user_counts))

        if args.output:
            tagged = write_annotated_page(loaded.html, args.output)
            print(f"Wrote annotated page to '{args.output}' ({tagged} commented blocks).")

        print(
            generate_report(
                page_title=loaded.page.title,
                threads=threads,
                user_counts=user_counts,
                users=users,
                status=config.status,
            )
        )
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except (ApiError, DataValidationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_API
    except Exception:
        logger.exception("Unexpected failure while generating the comment heatmap")
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate_heatmap())


if __name__ == "__main__":
    main()
