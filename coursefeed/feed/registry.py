"""In-process registry of learner feed sessions."""

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from coursefeed.core.context import LearnerContext
from coursefeed.engagement.comments import CassandraCommentLog
from coursefeed.engagement.likes import CassandraLikeLedger
from coursefeed.forum.service import CassandraForumCollaborator
from coursefeed.playback.clock import Clock, MonotonicClock
from coursefeed.progress.ledgers import (
    CassandraProgressLedger,
    CassandraSeenLedger,
    build_local_cache,
)
from coursefeed.submissions.service import (
    CassandraQuizCatalog,
    CassandraSubmissionCollaborator,
)
from coursefeed.units.resolver import CassandraEnrollmentResolver

from .session import FeedBackends, LearnerFeedSession, SessionNotStartedError


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


def build_cassandra_backends(
    session: "Session",
    keyspace: str,
    settings: Any,
    redis: "Redis | None" = None,
) -> FeedBackends:
    """Cassandra-backed collaborators for production."""
    return FeedBackends(
        resolver=CassandraEnrollmentResolver(session, keyspace),
        remote_progress=CassandraProgressLedger(session, keyspace),
        seen_ledger=CassandraSeenLedger(session, keyspace),
        local_cache=build_local_cache(settings),
        forum=CassandraForumCollaborator(session, keyspace),
        submissions=CassandraSubmissionCollaborator(session, keyspace),
        quizzes=CassandraQuizCatalog(session, keyspace),
        likes=CassandraLikeLedger(session, keyspace),
        comments=CassandraCommentLog(session, keyspace),
        redis=redis,
    )


class FeedSessionRegistry:
    """One feed session per learner inside this process."""

    def __init__(self, backends: FeedBackends, settings: Any, clock: Clock | None = None):
        self.backends = backends
        self.settings = settings
        self.clock = clock or MonotonicClock()
        self._sessions: dict[str, LearnerFeedSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _lock(self, learner_id: str) -> asyncio.Lock:
        lock = self._locks.get(learner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[learner_id] = lock
        return lock

    def get(self, learner_id: str) -> LearnerFeedSession:
        session = self._sessions.get(learner_id)
        if session is None:
            raise SessionNotStartedError
        return session

    async def start(self, learner_id: str) -> LearnerFeedSession:
        """Start a fresh session, closing the previous one of the learner."""
        async with self._lock(learner_id):
            previous = self._sessions.pop(learner_id, None)
            if previous is not None:
                await previous.close()
            session = LearnerFeedSession(learner_id, self.backends, self.settings, self.clock)
            with LearnerContext(learner_id):
                await session.start()
            self._sessions[learner_id] = session
            return session

    async def get_or_start(self, learner_id: str) -> LearnerFeedSession:
        session = self._sessions.get(learner_id)
        if session is not None:
            return session
        return await self.start(learner_id)

    async def close(self, learner_id: str) -> None:
        async with self._lock(learner_id):
            session = self._sessions.pop(learner_id, None)
            if session is not None:
                with LearnerContext(learner_id, session.enrollment_scope):
                    await session.close()
        self._locks.pop(learner_id, None)

    async def close_all(self) -> None:
        """Flush every session (application shutdown)."""
        for learner_id in list(self._sessions):
            try:
                await self.close(learner_id)
            except Exception as e:
                logger.warning("feed_session_close_failed", learner_id=learner_id, error=str(e))
        logger.info("feed_sessions_closed")
