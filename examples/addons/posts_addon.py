"""Posts addon: user posts kept on a scoped feed store.

Posts are authored by the local node identity. Only the author may edit
or delete a post. Editing appends a new entry that references the
original and removes the original from the feed.
"""

from __future__ import annotations

import logging
import time
from typing import Any

MANIFEST = {
    "id": "posts-addon",
    "name": "Posts Addon",
    "version": "0.0.1",
    "description": "An addon for creating and managing user posts.",
    "permissions": ["host:log", "host:storage:scoped"],
}

POSTS_STORE = "user_posts"

logger = logging.getLogger(__name__)


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{what} cannot be empty")
    return value


def _paginate(items: list, limit: int | None, offset: int) -> list:
    if offset < 0:
        raise ValueError("offset cannot be negative")
    if limit is not None and limit > 0:
        return items[offset : offset + limit]
    return items[offset:]


class PostsAddon:
    """Public interface other code uses once the addon is loaded."""

    def __init__(self, api, addon_id: str, store) -> None:
        self._api = api
        self.addon_id = addon_id
        self._store = store
        self.status = "initialized"

    def _db(self):
        if self._store is None or self._store.closed:
            raise RuntimeError("Posts database is not available")
        return self._store

    async def _find(self, post_hash: str):
        entry = await self._db().get(post_hash)
        if entry is None:
            raise LookupError(f"Post {post_hash} not found")
        return entry

    def _check_author(self, entry, action: str) -> str:
        current = self._api.get_self_identity()
        author = entry.value.get("author") if isinstance(entry.value, dict) else None
        if current is None or author != current:
            self._api.log(f"{current} may not {action} post {entry.hash} owned by {author}")
            raise PermissionError(f"Not authorized to {action} this post")
        return current

    async def create_post(self, text: str) -> str:
        """Add a post and return its entry hash."""
        _require_text(text, "Post text")
        post_hash = await self._db().add(
            {
                "text": text,
                "timestamp": time.time_ns() // 1_000_000,
                "author": self._api.get_self_identity(),
            }
        )
        self._api.log(f"Created post {post_hash}")
        return post_hash

    async def get_posts(self, limit: int | None = None, offset: int = 0) -> list[dict[str, Any]]:
        """Posts newest first, each with its ``hash``."""
        return _paginate(await self._sorted_posts(), limit, offset)

    async def get_posts_by_author(
        self, author_id: str, limit: int | None = None, offset: int = 0
    ) -> list[dict[str, Any]]:
        _require_text(author_id, "Author id")
        posts = [p for p in await self._sorted_posts() if p.get("author") == author_id]
        return _paginate(posts, limit, offset)

    async def delete_post(self, post_hash: str) -> dict[str, Any]:
        _require_text(post_hash, "Post hash")
        entry = await self._find(post_hash)
        self._check_author(entry, "delete")
        await self._db().remove(post_hash)
        self._api.log(f"Deleted post {post_hash}")
        return {"success": True, "hash": post_hash}

    async def edit_post(self, post_hash: str, new_text: str) -> str:
        """Replace a post's text. Returns the hash of the new entry."""
        _require_text(post_hash, "Post hash")
        _require_text(new_text, "New post text")
        entry = await self._find(post_hash)
        author = self._check_author(entry, "edit")

        db = self._db()
        new_hash = await db.add(
            {
                "text": new_text,
                "timestamp": time.time_ns() // 1_000_000,
                "author": author,
                "edited_from": post_hash,
            }
        )
        await db.remove(post_hash)
        self._api.log(f"Edited post {post_hash}, new entry {new_hash}")
        return new_hash

    async def _sorted_posts(self) -> list[dict[str, Any]]:
        entries = await self._db().all()
        ordered = sorted(
            enumerate(entries),
            key=lambda pair: (_timestamp(pair[1].value), pair[0]),
            reverse=True,
        )
        return [{**entry.value, "hash": entry.hash} for _, entry in ordered]


def _timestamp(value: Any) -> int:
    if isinstance(value, dict):
        return value.get("timestamp") or 0
    return 0


async def initialize(api, context):
    store = await api.get_scoped_store(POSTS_STORE, "feed")
    if store is None:
        api.log(f"Posts Addon ({context.id}): posts store unavailable")
    else:
        api.log(f"Posts Addon ({context.id}): posts store at {store.address}")
        store.events.on("update", lambda entry: logger.debug("posts update: %s", entry.op))
    return PostsAddon(api, context.id, store)


async def terminate(api, context):
    api.log(f"Posts Addon ({context.id}): terminating")
