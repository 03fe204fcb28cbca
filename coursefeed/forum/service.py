"""Forum requirement checking and contribution submission.

The checker answers, per unit, whether the learner already posted the
required contribution. Positive answers are cached for the session (a post
is never withdrawn); negative answers and failed checks are asked again on
the next request.
"""

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from coursefeed.units.models import ForumFormat, Unit

from .models import ForumPost, ForumPostPayload, ForumStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ForumError(Exception):
    """Base forum error."""

    def __init__(self, message: str, code: str = "forum_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ForumNotRequiredError(ForumError):
    """Unit does not ask for a forum contribution."""

    def __init__(self, message: str = "This unit has no forum"):
        super().__init__(message, "forum_not_required")


class InvalidForumPostError(ForumError):
    """Contribution does not match the required format or is empty."""

    def __init__(self, message: str = "Invalid forum contribution"):
        super().__init__(message, "invalid_forum_post")


# ==============================================================================
# Collaborator
# ==============================================================================


class ForumCollaborator(Protocol):
    """Durable store of forum contributions."""

    async def has_contribution(
        self, unit: Unit, learner_id: str, required_format: ForumFormat | None
    ) -> bool: ...

    async def submit(
        self, unit: Unit, learner_id: str, payload: ForumPostPayload
    ) -> ForumPost: ...


class CassandraForumCollaborator:
    """Forum contributions on the forum_posts table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_post = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.forum_posts
            WHERE feed_id = ? AND learner_id = ?
        """)
        self._insert_post = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.forum_posts (
                feed_id, learner_id, post_id, course_id, lesson_id, content_id,
                format, content, media_url, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

    async def _find(self, unit: Unit, learner_id: str) -> ForumPost | None:
        result = await self.session.aexecute(self._get_post, [unit.feed_id, learner_id])
        row = result.one()
        return ForumPost.from_row(row) if row else None

    async def has_contribution(
        self, unit: Unit, learner_id: str, required_format: ForumFormat | None
    ) -> bool:
        post = await self._find(unit, learner_id)
        if post is None:
            return False
        return required_format is None or post.format == required_format

    async def submit(
        self, unit: Unit, learner_id: str, payload: ForumPostPayload
    ) -> ForumPost:
        """Insert the contribution; a concurrent or earlier one wins."""
        post = ForumPost(
            unit_key=unit.key,
            learner_id=learner_id,
            format=payload.format,
            content=payload.content,
            media_url=payload.media_url,
            created_at=datetime.now(UTC),
        )
        result = await self.session.aexecute(
            self._insert_post,
            [
                unit.feed_id,
                learner_id,
                post.post_id,
                unit.course_id,
                unit.lesson_id,
                unit.content_id,
                post.format.value,
                post.content,
                post.media_url,
                post.created_at,
            ],
        )
        if result.was_applied:
            return post
        existing = await self._find(unit, learner_id)
        return existing or post


# ==============================================================================
# Requirement Checker
# ==============================================================================


class ForumRequirementChecker:
    """Per-session forum status of one learner."""

    def __init__(self, collaborator: ForumCollaborator, learner_id: str):
        self.collaborator = collaborator
        self.learner_id = learner_id
        self._satisfied: set[str] = set()

    def is_satisfied(self, unit: Unit) -> bool:
        """Cached answer; units without a forum requirement always pass."""
        if not unit.forum_required:
            return True
        return unit.feed_id in self._satisfied

    def status(self, unit: Unit) -> ForumStatus:
        return ForumStatus(
            feed_id=unit.feed_id,
            required=unit.forum_required,
            satisfied=self.is_satisfied(unit),
            required_format=unit.forum_format,
        )

    async def refresh(self, unit: Unit) -> bool:
        """Ask the collaborator unless the unit is already known satisfied."""
        if self.is_satisfied(unit):
            return True
        try:
            satisfied = await self.collaborator.has_contribution(
                unit, self.learner_id, unit.forum_format
            )
        except Exception as e:
            logger.warning(
                "forum_check_failed",
                feed_id=unit.feed_id,
                error=str(e),
            )
            return False
        if satisfied:
            self._satisfied.add(unit.feed_id)
        return satisfied

    async def load(self, units: list[Unit]) -> None:
        """Check every forum-required unit at session start."""
        required = [unit for unit in units if unit.forum_required]
        if required:
            await asyncio.gather(*(self.refresh(unit) for unit in required))
        logger.debug(
            "forum_statuses_loaded",
            required=len(required),
            satisfied=len(self._satisfied),
        )

    async def contribute(self, unit: Unit, payload: ForumPostPayload) -> ForumPost:
        """Submit the learner's contribution and mark the unit satisfied."""
        if not unit.forum_required:
            raise ForumNotRequiredError
        if unit.forum_format is not None and payload.format != unit.forum_format:
            raise InvalidForumPostError(
                f"This forum expects a {unit.forum_format.value} contribution"
            )
        if payload.format == ForumFormat.TEXT and not payload.content.strip():
            raise InvalidForumPostError("Contribution text is empty")
        if payload.format != ForumFormat.TEXT and not payload.media_url:
            raise InvalidForumPostError("Contribution media is missing")

        post = await self.collaborator.submit(unit, self.learner_id, payload)
        self._satisfied.add(unit.feed_id)
        logger.info(
            "forum_contribution_submitted",
            feed_id=unit.feed_id,
            format=post.format.value,
        )
        return post
