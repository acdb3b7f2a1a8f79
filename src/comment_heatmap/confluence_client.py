"""Confluence Cloud REST API client for pages, inline comments and users."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from .body import parse_body
from .config import Config
from .errors import ApiError, DataValidationError
from .models import Comment, Page, UserIdentity


class ConfluenceClient:
    """Small, typed client for the Confluence page, comment and user APIs."""

    _COMMENT_PAGE_SIZE = 250
    _MAX_RETRIES = 5
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: Config, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated Confluence API client.

        Args:
            config: Validated runtime configuration including site URL and token.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self.base_url = config.base_url

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(config.email, config.api_token)
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a site-relative path."""
        return f"{self.base_url}/{path.lstrip('/')}"

    def _parse_datetime(self, value: Optional[str]) -> Optional[datetime]:
        """Parse Confluence ISO8601 timestamps into timezone-aware datetimes."""
        if not value:
            return None

        normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GET request with retry logic for 429/5xx responses.

        Raises:
            ApiError: If the request repeatedly fails, returns HTTP >= 400,
                or does not return a JSON object.
        """
        url = self._build_url(path)
        query = dict(params or {})

        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=query, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise ApiError(f"Confluence request failed after retries: GET {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(self._extract_backoff_seconds(response, attempt))
                continue

            if status_code >= 400:
                raise ApiError(
                    "Confluence API request failed: "
                    f"GET {url} returned {status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise ApiError(f"Confluence API returned invalid JSON: GET {url}") from exc

            if not isinstance(payload, dict):
                raise ApiError(f"Confluence API returned unexpected payload shape: GET {url}")

            return payload

        raise ApiError(f"Confluence request failed after retries: GET {url}") from last_error

    def get_page(self, page_id: str) -> Page:
        """Fetch a page with its storage-format body.

        Raises:
            DataValidationError: If the payload has no id or no storage body.
        """
        payload = self._get_json(f"wiki/api/v2/pages/{page_id}", params={"body-format": "storage"})

        returned_id = payload.get("id")
        if not returned_id:
            raise DataValidationError(f"Confluence page payload is missing its id: page_id={page_id}")

        storage = ((payload.get("body") or {}).get("storage") or {}).get("value")
        if not storage:
            raise DataValidationError(f"Confluence page has no storage content: page_id={page_id}")

        return Page(
            id=str(returned_id),
            title=str(payload.get("title") or ""),
            storage_markup=str(storage),
        )

    def _parse_comment(self, item: Dict[str, Any]) -> Optional[Comment]:
        comment_id = item.get("id")
        if comment_id is None:
            return None

        properties = item.get("properties") or {}
        version = item.get("version") or {}
        parent_id = item.get("parentCommentId")
        page_id = item.get("pageId")

        return Comment(
            id=str(comment_id),
            parentCommentId=str(parent_id) if parent_id else None,
            authorId=version.get("authorId") or None,
            createdAt=self._parse_datetime(version.get("createdAt")),
            body=parse_body(item.get("body")),
            resolutionStatus=item.get("resolutionStatus") or None,
            markerRef=properties.get("inlineMarkerRef") or properties.get("inline-marker-ref") or None,
            originalSelection=(
                properties.get("inlineOriginalSelection")
                or properties.get("inline-original-selection")
                or None
            ),
            pageId=str(page_id) if page_id else None,
        )

    def list_inline_comments(self, page_id: str) -> List[Comment]:
        """List every inline comment on a page, following cursor pagination.

        Comments the API attributes to another page are dropped.
        """
        comments: List[Comment] = []
        path: Optional[str] = f"wiki/api/v2/pages/{page_id}/inline-comments"
        params: Optional[Dict[str, Any]] = {
            "body-format": "atlas_doc_format",
            "status": "current",
            "limit": self._COMMENT_PAGE_SIZE,
        }

        while path:
            payload = self._get_json(path, params=params)

            for item in payload.get("results", []):
                comment = self._parse_comment(item)
                if comment is None:
                    continue
                if comment.pageId is not None and comment.pageId != str(page_id):
                    continue
                comments.append(comment)

            # The next link already carries the cursor and original query.
            path = (payload.get("_links") or {}).get("next")
            params = None

        return comments

    def lookup_user(self, account_id: str) -> UserIdentity:
        """Resolve an account id to a display name and avatar path."""
        if not account_id:
            raise DataValidationError("Missing account id for user lookup.")

        payload = self._get_json("wiki/rest/api/user", params={"accountId": account_id})
        picture = payload.get("profilePicture") or {}
        return UserIdentity(
            display_name=payload.get("displayName") or payload.get("publicName"),
            avatar_path=picture.get("path"),
        )
