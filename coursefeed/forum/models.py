"""Database models for required forum contributions.

Cassandra table definitions for:
- Forum posts: at most one contribution per learner per unit

Posts are keyed by unit and learner, not by enrollment, so a contribution
stays valid when the learner is re-enrolled into another cohort.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from coursefeed.units.models import ForumFormat, UnitKey


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition by feed_id, clustering by learner_id: existence check is one read
FORUM_POSTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.forum_posts (
    feed_id TEXT,
    learner_id TEXT,
    post_id UUID,
    course_id TEXT,
    lesson_id TEXT,
    content_id TEXT,
    format TEXT,
    content TEXT,
    media_url TEXT,
    created_at TIMESTAMP,
    PRIMARY KEY ((feed_id), learner_id)
)
"""

FORUM_TABLES_CQL = [FORUM_POSTS_TABLE_CQL]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class ForumStatus:
    """Whether a learner satisfied the forum requirement of a unit."""

    feed_id: str
    required: bool
    satisfied: bool
    required_format: ForumFormat | None = None


@dataclass
class ForumPostPayload:
    """Contribution submitted by a learner."""

    format: ForumFormat = ForumFormat.TEXT
    content: str = ""
    media_url: str | None = None


@dataclass
class ForumPost:
    """A stored forum contribution."""

    unit_key: UnitKey
    learner_id: str
    format: ForumFormat
    content: str = ""
    media_url: str | None = None
    post_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "ForumPost":
        return cls(
            unit_key=UnitKey(row.course_id, row.lesson_id, row.content_id),
            learner_id=row.learner_id,
            format=ForumFormat(row.format or ForumFormat.TEXT.value),
            content=row.content or "",
            media_url=row.media_url,
            post_id=row.post_id,
            created_at=row.created_at,
        )
