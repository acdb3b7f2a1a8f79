"""Configuration parsing and validation for the comment heatmap."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .errors import AuthenticationError, ConfigurationError

STATUS_OPEN = "open"
STATUS_RESOLVED = "resolved"
STATUS_ALL = "all"
VALID_STATUSES = (STATUS_OPEN, STATUS_RESOLVED, STATUS_ALL)


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the heatmap CLI."""

    base_url: str
    page_id: str
    status: str
    max_items: Optional[int]
    email: str
    api_token: str


def normalize_base_url(base_url: str) -> str:
    """Strip whitespace and trailing slashes from a Confluence site URL.

    Raises:
        ConfigurationError: If the URL is empty or not http(s).
    """
    normalized = (base_url or "").strip().rstrip("/")
    if not normalized:
        raise ConfigurationError(
            "Missing Confluence base URL. Pass --base-url or set 'CONFLUENCE_BASE_URL'."
        )
    if not normalized.startswith(("https://", "http://")):
        raise ConfigurationError(
            f"Invalid Confluence base URL '{base_url}': expected an http(s) URL."
        )
    return normalized


def load_config(
    base_url: str,
    page_id: str,
    status: str = STATUS_OPEN,
    max_items: Optional[int] = None,
) -> Config:
    """Build and validate application configuration.

    Args:
        base_url: Confluence site URL, e.g. ``https://example.atlassian.net``.
        page_id: Identifier of the page to analyze.
        status: Resolution status of the threads to include.
        max_items: Optional cap on the number of threads to report.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If any argument is missing or out of range.
        AuthenticationError: If ``CONFLUENCE_API_TOKEN`` is not configured.
    """
    normalized_url = normalize_base_url(base_url)

    normalized_page_id = (page_id or "").strip()
    if not normalized_page_id:
        raise ConfigurationError("Missing required page id.")

    if status not in VALID_STATUSES:
        raise ConfigurationError(
            f"Invalid value for 'status': expected one of {', '.join(VALID_STATUSES)}."
        )

    if max_items is not None and max_items <= 0:
        raise ConfigurationError("Invalid value for 'max_items': expected an integer greater than 0.")

    api_token: str = os.getenv("CONFLUENCE_API_TOKEN", "").strip()
    if not api_token:
        raise AuthenticationError(
            "Missing required Confluence API token. "
            "Set the 'CONFLUENCE_API_TOKEN' environment variable before running the heatmap."
        )

    return Config(
        base_url=normalized_url,
        page_id=normalized_page_id,
        status=status,
        max_items=max_items,
        email=os.getenv("CONFLUENCE_EMAIL", "").strip(),
        api_token=api_token,
    )
