"""Deduplicated, permanently cached author lookups.

A :class:`UserCache` is an explicit object with its own lifetime; tests and callers
construct their own instead of sharing a module-level singleton.

Guarantees:
- At most one in-flight lookup per user id; concurrent callers await the same task.
- Results are kept until :meth:`UserCache.clear`.
- A failed lookup resolves to the ``"Unknown User"`` placeholder, which is cached
  too, so a failing id is never retried and callers never see an exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Sequence

from .models import EnrichedUser, UserIdentity

if TYPE_CHECKING:
    from .confluence_client import ConfluenceClient

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"
DEFAULT_AVATAR = "https://secure.gravatar.com/avatar/?d=mp"

UserLookup = Callable[[str], Awaitable[UserIdentity]]


def placeholder_user(user_id: Optional[str]) -> EnrichedUser:
    """Identity shown when an author is missing or cannot be resolved."""
    return EnrichedUser(user_id=user_id, display_name=UNKNOWN_USER, avatar_url=DEFAULT_AVATAR)


class UserCache:
    """Per-process cache of enriched author identities, keyed by user id."""

    def __init__(self, lookup: UserLookup, base_url: str = "") -> None:
        """Initialize an empty cache.

        Args:
            lookup: Coroutine function resolving a user id to a ``UserIdentity``.
            base_url: Site URL prefixed to relative avatar paths.
        """
        self._lookup = lookup
        self._base_url = base_url.rstrip("/")
        self._resolved: Dict[str, EnrichedUser] = {}
        self._pending: Dict[str, "asyncio.Task[EnrichedUser]"] = {}
        self.lookup_count = 0
        self._generation = 0

    @classmethod
    def from_client(cls, client: ConfluenceClient) -> UserCache:
        """Build a cache whose lookups run the blocking REST client on a worker thread."""

        async def _lookup(user_id: str) -> UserIdentity:
            return await asyncio.to_thread(client.lookup_user, user_id)

        return cls(lookup=_lookup, base_url=client.base_url)

    def __len__(self) -> int:
        return len(self._resolved)

    def _avatar_url(self, avatar_path: Optional[str]) -> str:
        if not avatar_path:
            return DEFAULT_AVATAR
        if avatar_path.startswith(("http://", "https://")):
            return avatar_path
        return f"{self._base_url}{avatar_path}"

    async def _fetch(self, user_id: str, generation: int) -> EnrichedUser:
        self.lookup_count += 1
        try:
            identity = await self._lookup(user_id)
        except asyncio.CancelledError:
            self._forget_pending(user_id)
            raise
        except Exception as exc:
            logger.warning(
                "User lookup failed; caching placeholder",
                extra={"user_id": user_id, "error": str(exc)},
            )
            user = placeholder_user(user_id)
        else:
            user = EnrichedUser(
                user_id=user_id,
                display_name=identity.display_name or UNKNOWN_USER,
                avatar_url=self._avatar_url(identity.avatar_path),
            )

        # A lookup started before clear() still answers its waiters but is not cached.
        if generation == self._generation:
            self._resolved[user_id] = user
        self._forget_pending(user_id)
        return user

    def _forget_pending(self, user_id: str) -> None:
        if self._pending.get(user_id) is asyncio.current_task():
            del self._pending[user_id]

    async def get_user(self, user_id: Optional[str]) -> EnrichedUser:
        """Resolve one user id, sharing any in-flight lookup for the same id."""
        if not user_id:
            return placeholder_user(None)

        cached = self._resolved.get(user_id)
        if cached is not None:
            return cached

        # Check and publish happen with no await in between.
        task = self._pending.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch(user_id, self._generation))
            self._pending[user_id] = task

        # Shielded so one cancelled caller does not cancel the shared lookup.
        return await asyncio.shield(task)

    async def get_many(self, user_ids: Sequence[Optional[str]]) -> List[EnrichedUser]:
        """Resolve many ids, preserving input order, duplicates and ``None`` slots."""
        if not user_ids:
            return []

        unique_ids = list(dict.fromkeys(user_id for user_id in user_ids if user_id))
        users = await asyncio.gather(*(self.get_user(user_id) for user_id in unique_ids))
        by_id = dict(zip(unique_ids, users))

        return [by_id[user_id] if user_id else placeholder_user(None) for user_id in user_ids]

    def clear(self) -> None:
        """Forget every resolved identity.

        Lookups already in flight keep running and still answer the callers waiting
        on them, but their results are not cached.
        """
        self._generation += 1
        self._pending.clear()
        self._resolved.clear()
