"""Unit likes: optimistic toggle over a compare-and-set transaction.

The learner sees the toggle immediately (tentative state). The durable
change runs as a read/compare-and-set loop that retries on conflicts; the
authoritative result then replaces the tentative one, or the tentative
change is rolled back exactly to what was shown before.
"""

import asyncio
import random
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from coursefeed.units.models import Unit, UnitKey

from .models import LikeSnapshot, LikeToggleResult


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

LIKE_FAILED_ADVISORY = "Your like could not be saved. Try again in a moment."


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class EngagementError(Exception):
    """Base engagement error."""

    def __init__(self, message: str, code: str = "engagement_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class LikeTransactionError(EngagementError):
    """Like transaction kept conflicting or the store failed."""

    def __init__(self, message: str = LIKE_FAILED_ADVISORY):
        super().__init__(message, "like_transaction_failed")


# ==============================================================================
# Ledger
# ==============================================================================


class LikeLedger(Protocol):
    """Durable like markers and counters with compare-and-set."""

    async def read(self, unit_key: UnitKey, learner_id: str) -> LikeSnapshot: ...

    async def compare_and_set(
        self,
        unit_key: UnitKey,
        learner_id: str,
        expected_count: int,
        like: bool,
    ) -> bool: ...


class CassandraLikeLedger:
    """Likes on the unit_likes table.

    Marker rows and the static counter share a partition, so both change in
    one conditional batch: the marker condition rejects double likes, the
    counter condition rejects writes based on a stale read.
    """

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_count = self.session.prepare(f"""
            SELECT likes_count FROM {self.keyspace}.unit_likes
            WHERE feed_id = ?
            LIMIT 1
        """)
        self._get_marker = self.session.prepare(f"""
            SELECT learner_id FROM {self.keyspace}.unit_likes
            WHERE feed_id = ? AND learner_id = ?
        """)
        # A never-liked unit has no counter yet: 0 also matches null
        self._like = self.session.prepare(f"""
            BEGIN BATCH
                INSERT INTO {self.keyspace}.unit_likes (feed_id, learner_id, liked_at)
                VALUES (?, ?, ?) IF NOT EXISTS
                UPDATE {self.keyspace}.unit_likes SET likes_count = ?
                WHERE feed_id = ? IF likes_count IN (?, ?)
            APPLY BATCH
        """)
        self._unlike = self.session.prepare(f"""
            BEGIN BATCH
                DELETE FROM {self.keyspace}.unit_likes
                WHERE feed_id = ? AND learner_id = ? IF EXISTS
                UPDATE {self.keyspace}.unit_likes SET likes_count = ?
                WHERE feed_id = ? IF likes_count IN (?, ?)
            APPLY BATCH
        """)

    async def read(self, unit_key: UnitKey, learner_id: str) -> LikeSnapshot:
        count_result = await self.session.aexecute(self._get_count, [unit_key.feed_id])
        count_row = count_result.one()
        marker_result = await self.session.aexecute(
            self._get_marker, [unit_key.feed_id, learner_id]
        )
        return LikeSnapshot(
            liked=marker_result.one() is not None,
            count=max(0, (count_row.likes_count or 0) if count_row else 0),
        )

    async def compare_and_set(
        self,
        unit_key: UnitKey,
        learner_id: str,
        expected_count: int,
        like: bool,
    ) -> bool:
        feed_id = unit_key.feed_id
        expected = [expected_count, None if expected_count == 0 else expected_count]
        if like:
            result = await self.session.aexecute(
                self._like,
                [feed_id, learner_id, datetime.now(UTC), expected_count + 1, feed_id, *expected],
            )
        else:
            result = await self.session.aexecute(
                self._unlike,
                [feed_id, learner_id, max(0, expected_count - 1), feed_id, *expected],
            )
        return bool(result.was_applied)


# ==============================================================================
# Transaction
# ==============================================================================


async def run_like_transaction(
    ledger: LikeLedger,
    unit_key: UnitKey,
    learner_id: str,
    like: bool,
    max_attempts: int = 5,
    backoff_seconds: float = 0.05,
) -> LikeSnapshot:
    """Drive the learner's like state to ``like`` and return the result.

    Reads marker and counter, then compare-and-sets both. A conflicting
    concurrent write makes the CAS fail and the loop re-reads. Reaching the
    target state by someone else's write (a second device) is a success.
    """
    for attempt in range(1, max_attempts + 1):
        snapshot = await ledger.read(unit_key, learner_id)
        if snapshot.liked == like:
            return snapshot

        if await ledger.compare_and_set(unit_key, learner_id, snapshot.count, like):
            count = snapshot.count + 1 if like else max(0, snapshot.count - 1)
            return LikeSnapshot(liked=like, count=count)

        logger.debug(
            "like_transaction_conflict",
            feed_id=unit_key.feed_id,
            attempt=attempt,
        )
        if backoff_seconds > 0 and attempt < max_attempts:
            await asyncio.sleep(backoff_seconds * attempt * random.uniform(0.5, 1.5))

    raise LikeTransactionError


# ==============================================================================
# Service
# ==============================================================================


class LikeService:
    """Like state of one learner, as shown to them."""

    def __init__(
        self,
        ledger: LikeLedger,
        learner_id: str,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
    ):
        self.ledger = ledger
        self.learner_id = learner_id
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._states: dict[str, LikeSnapshot] = {}
        self._pending: set[str] = set()

    def visible(self, unit: Unit) -> LikeSnapshot | None:
        return self._states.get(unit.feed_id)

    def is_pending(self, unit: Unit) -> bool:
        return unit.feed_id in self._pending

    async def load(self, unit: Unit) -> LikeSnapshot:
        snapshot = await self.ledger.read(unit.key, self.learner_id)
        self._states[unit.feed_id] = snapshot
        return snapshot

    async def toggle(self, unit: Unit) -> LikeToggleResult:
        """Flip the learner's like on a unit.

        A toggle arriving while another one is in flight for the same unit is
        ignored and reports the current visible state.
        """
        feed_id = unit.feed_id
        if feed_id in self._pending:
            current = self._states.get(feed_id) or LikeSnapshot(False, 0)
            return LikeToggleResult(current.liked, current.count, ignored=True)

        self._pending.add(feed_id)
        try:
            previous = self._states.get(feed_id)
            if previous is None:
                try:
                    previous = await self.load(unit)
                except Exception as e:
                    raise LikeTransactionError from e

            tentative = LikeSnapshot(
                liked=not previous.liked,
                count=previous.count + 1 if not previous.liked else max(0, previous.count - 1),
            )
            self._states[feed_id] = tentative

            try:
                committed = await run_like_transaction(
                    self.ledger,
                    unit.key,
                    self.learner_id,
                    tentative.liked,
                    max_attempts=self.max_attempts,
                    backoff_seconds=self.backoff_seconds,
                )
            except Exception as e:
                self._states[feed_id] = previous
                logger.warning(
                    "like_toggle_rolled_back",
                    feed_id=feed_id,
                    error=str(e),
                )
                return LikeToggleResult(
                    liked=previous.liked,
                    count=previous.count,
                    committed=False,
                    advisory=LIKE_FAILED_ADVISORY,
                )

            self._states[feed_id] = committed
            logger.info(
                "like_toggled",
                feed_id=feed_id,
                liked=committed.liked,
                count=committed.count,
            )
            return LikeToggleResult(committed.liked, committed.count)
        finally:
            self._pending.discard(feed_id)
