"""Database models for unit engagement (likes and comments).

Cassandra table definitions for:
- Unit likes: one marker row per learner who liked a unit, plus the like
  counter as a static column of the same partition, so marker and counter
  commit together in one conditional batch
- Unit comments: append-only log per unit, chronological clustering
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from coursefeed.progress.models import ensure_utc_aware


TEMPORARY_ID_PREFIX = "temp-"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

UNIT_LIKES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.unit_likes (
    feed_id TEXT,
    learner_id TEXT,
    likes_count INT STATIC,
    liked_at TIMESTAMP,
    PRIMARY KEY ((feed_id), learner_id)
)
"""

UNIT_COMMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.unit_comments (
    feed_id TEXT,
    created_at TIMESTAMP,
    comment_id TEXT,
    parent_id TEXT,
    author_id TEXT,
    author_name TEXT,
    text TEXT,
    PRIMARY KEY ((feed_id), created_at, comment_id)
) WITH CLUSTERING ORDER BY (created_at DESC, comment_id ASC)
"""

ENGAGEMENT_TABLES_CQL = [UNIT_LIKES_TABLE_CQL, UNIT_COMMENTS_TABLE_CQL]


# ==============================================================================
# Likes
# ==============================================================================


@dataclass(frozen=True)
class LikeSnapshot:
    """Authoritative like state of one learner on one unit."""

    liked: bool
    count: int


@dataclass
class LikeToggleResult:
    """What the learner sees after a toggle.

    ``committed`` is False when the change was rolled back; ``advisory``
    then explains it. ``ignored`` marks a toggle dropped because another one
    was still pending.
    """

    liked: bool
    count: int
    committed: bool = True
    ignored: bool = False
    advisory: str | None = None


# ==============================================================================
# Comments
# ==============================================================================


@dataclass
class CommentRecord:
    """One comment of a unit's thread."""

    comment_id: str
    feed_id: str
    author_id: str
    text: str
    author_name: str = ""
    parent_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    temporary: bool = False

    @classmethod
    def from_row(cls, row: Any) -> "CommentRecord":
        return cls(
            comment_id=row.comment_id,
            feed_id=row.feed_id,
            author_id=row.author_id,
            text=row.text or "",
            author_name=row.author_name or "",
            parent_id=row.parent_id,
            created_at=ensure_utc_aware(row.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "feed_id": self.feed_id,
            "author_id": self.author_id,
            "text": self.text,
            "author_name": self.author_name,
            "parent_id": self.parent_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CommentRecord":
        return cls(
            comment_id=data["comment_id"],
            feed_id=data["feed_id"],
            author_id=data["author_id"],
            text=data.get("text", ""),
            author_name=data.get("author_name", ""),
            parent_id=data.get("parent_id"),
            created_at=ensure_utc_aware(datetime.fromisoformat(data["created_at"])),
        )


@dataclass
class CommentNode:
    """A comment with its replies, for rendering a thread."""

    comment: CommentRecord
    replies: list["CommentNode"] = field(default_factory=list)
