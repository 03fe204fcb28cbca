"""Unit comment threads.

Comments are an append-only log per unit. A new comment shows up at once as
a temporary entry; once the durable append succeeds the thread is fetched
again and the canonical list replaces the optimistic one. The first page of
a thread is cached in Redis.
"""

import html
from typing import TYPE_CHECKING, Protocol
from uuid import uuid4

import orjson
import structlog
from redis.exceptions import RedisError

from coursefeed.core.redis import comment_thread_key
from coursefeed.units.models import Unit

from .likes import EngagementError
from .models import TEMPORARY_ID_PREFIX, CommentNode, CommentRecord


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

DEFAULT_MAX_LENGTH = 2000
DEFAULT_CACHE_TTL_SECONDS = 300
THREAD_PAGE_SIZE = 100


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CommentWriteError(EngagementError):
    """Durable append failed; the temporary entry was removed."""

    def __init__(self, message: str = "Your comment could not be published"):
        super().__init__(message, "comment_write_failed")


class InvalidCommentError(EngagementError):
    """Comment text is empty, too long, or replies to an unknown comment."""

    def __init__(self, message: str = "Invalid comment"):
        super().__init__(message, "invalid_comment")


# ==============================================================================
# Log
# ==============================================================================


class CommentLog(Protocol):
    """Append-only comment store."""

    async def append(self, comment: CommentRecord) -> CommentRecord: ...

    async def list(self, feed_id: str, limit: int = THREAD_PAGE_SIZE) -> list[CommentRecord]:
        """Newest ``limit`` comments of a unit, newest first."""
        ...


class CassandraCommentLog:
    """Comments on the unit_comments table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.unit_comments (
                feed_id, created_at, comment_id, parent_id,
                author_id, author_name, text
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._list_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.unit_comments
            WHERE feed_id = ?
            LIMIT ?
        """)

    async def append(self, comment: CommentRecord) -> CommentRecord:
        await self.session.aexecute(
            self._insert_comment,
            [
                comment.feed_id,
                comment.created_at,
                comment.comment_id,
                comment.parent_id,
                comment.author_id,
                comment.author_name,
                comment.text,
            ],
        )
        return comment

    async def list(self, feed_id: str, limit: int = THREAD_PAGE_SIZE) -> list[CommentRecord]:
        rows = await self.session.aexecute(self._list_comments, [feed_id, limit])
        return [CommentRecord.from_row(row) for row in rows]


# ==============================================================================
# Thread Helpers
# ==============================================================================


def sanitize_comment(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Trim, bound and escape comment text."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidCommentError("Comment is empty")
    if len(cleaned) > max_length:
        raise InvalidCommentError(f"Comment is longer than {max_length} characters")
    return html.escape(cleaned)


def build_thread(comments: list[CommentRecord]) -> list[CommentNode]:
    """Arrange a flat log into a forest.

    Root comments come newest first; replies under each comment come in the
    order they were written. Replies to a missing parent show up as roots.
    """
    ids = {c.comment_id for c in comments}
    nodes = {c.comment_id: CommentNode(comment=c) for c in comments}
    roots: list[CommentNode] = []
    for comment in sorted(comments, key=lambda c: c.created_at):
        node = nodes[comment.comment_id]
        if comment.parent_id and comment.parent_id in ids:
            nodes[comment.parent_id].replies.append(node)
        else:
            roots.append(node)
    roots.reverse()
    return roots


# ==============================================================================
# Comment Service
# ==============================================================================


class CommentService:
    """Comment threads as seen by one learner."""

    def __init__(
        self,
        log: CommentLog,
        redis: "Redis | None" = None,
        max_length: int = DEFAULT_MAX_LENGTH,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        self.log = log
        self.redis = redis
        self.max_length = max_length
        self.cache_ttl_seconds = cache_ttl_seconds
        self._threads: dict[str, list[CommentRecord]] = {}

    def visible(self, feed_id: str) -> list[CommentRecord]:
        return list(self._threads.get(feed_id, []))

    def comment_count(self, feed_id: str) -> int:
        return len(self._threads.get(feed_id, []))

    async def list_thread(self, unit: Unit) -> list[CommentNode]:
        comments = await self._get_cached(unit.feed_id)
        if comments is None:
            comments = await self.log.list(unit.feed_id)
            await self._cache(unit.feed_id, comments)
        # Optimistic entries still in flight stay visible
        pending = [c for c in self._threads.get(unit.feed_id, []) if c.temporary]
        self._threads[unit.feed_id] = comments + pending
        return build_thread(self._threads[unit.feed_id])

    async def add_comment(
        self,
        unit: Unit,
        author_id: str,
        text: str,
        parent_id: str | None = None,
        author_name: str = "",
    ) -> CommentRecord:
        """Publish a comment or a reply.

        Raises:
            InvalidCommentError: empty/oversized text or unknown parent
            CommentWriteError: the durable append failed
        """
        cleaned = sanitize_comment(text, self.max_length)
        feed_id = unit.feed_id
        thread = self._threads.setdefault(feed_id, [])
        if parent_id is not None and thread and parent_id not in {
            c.comment_id for c in thread
        }:
            raise InvalidCommentError("Reply target not found")

        temporary = CommentRecord(
            comment_id=f"{TEMPORARY_ID_PREFIX}{uuid4().hex}",
            feed_id=feed_id,
            author_id=author_id,
            author_name=author_name,
            text=cleaned,
            parent_id=parent_id,
            temporary=True,
        )
        thread.append(temporary)

        try:
            stored = await self.log.append(
                CommentRecord(
                    comment_id=str(uuid4()),
                    feed_id=feed_id,
                    author_id=author_id,
                    author_name=author_name,
                    text=cleaned,
                    parent_id=parent_id,
                    created_at=temporary.created_at,
                )
            )
        except Exception as e:
            self._threads[feed_id] = [
                c for c in self._threads.get(feed_id, []) if c is not temporary
            ]
            logger.warning("comment_write_failed", feed_id=feed_id, error=str(e))
            raise CommentWriteError from e

        await self._invalidate(feed_id)
        try:
            canonical = await self.log.list(feed_id)
        except Exception as e:
            logger.warning("comment_refetch_failed", feed_id=feed_id, error=str(e))
            canonical = [
                c for c in self._threads.get(feed_id, []) if not c.temporary
            ] + [stored]

        pending = [
            c
            for c in self._threads.get(feed_id, [])
            if c.temporary and c is not temporary
        ]
        self._threads[feed_id] = canonical + pending
        logger.info(
            "comment_added",
            feed_id=feed_id,
            comment_id=stored.comment_id,
            is_reply=parent_id is not None,
        )
        return stored

    # ==========================================================================
    # Cache Management
    # ==========================================================================

    async def _get_cached(self, feed_id: str) -> list[CommentRecord] | None:
        if not self.redis:
            return None
        try:
            cached = await self.redis.get(comment_thread_key(feed_id))
        except RedisError as e:
            logger.warning("comment_cache_read_failed", feed_id=feed_id, error=str(e))
            return None
        if not cached:
            return None
        return [CommentRecord.from_dict(item) for item in orjson.loads(cached)]

    async def _cache(self, feed_id: str, comments: list[CommentRecord]) -> None:
        if not self.redis:
            return
        try:
            await self.redis.setex(
                comment_thread_key(feed_id),
                self.cache_ttl_seconds,
                orjson.dumps([c.to_dict() for c in comments]),
            )
        except RedisError as e:
            logger.warning("comment_cache_write_failed", feed_id=feed_id, error=str(e))

    async def _invalidate(self, feed_id: str) -> None:
        if not self.redis:
            return
        try:
            await self.redis.delete(comment_thread_key(feed_id))
        except RedisError as e:
            logger.warning("comment_cache_invalidate_failed", feed_id=feed_id, error=str(e))
