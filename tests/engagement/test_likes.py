"""Tests for like toggling and the compare-and-set transaction."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra.cluster import Session

from coursefeed.engagement.likes import (
    LIKE_FAILED_ADVISORY,
    CassandraLikeLedger,
    LikeService,
    LikeTransactionError,
    run_like_transaction,
)
from tests.fakes import FakeLikeLedger, make_unit


UNIT = make_unit("v1")


@pytest.fixture
def ledger() -> FakeLikeLedger:
    return FakeLikeLedger()


class TestToggle:
    @pytest.mark.asyncio
    async def test_like_then_unlike_restores_count(self, ledger):
        ledger.counts[UNIT.feed_id] = 7
        service = LikeService(ledger, "learner-1", backoff_seconds=0)

        liked = await service.toggle(UNIT)
        assert (liked.liked, liked.count, liked.committed) == (True, 8, True)

        unliked = await service.toggle(UNIT)
        assert (unliked.liked, unliked.count) == (False, 7)
        assert ledger.counts[UNIT.feed_id] == 7
        assert service.visible(UNIT).count == 7

    @pytest.mark.asyncio
    async def test_failure_rolls_back_to_previous_state(self, ledger):
        service = LikeService(ledger, "learner-1", backoff_seconds=0)
        await service.toggle(UNIT)
        ledger.fail = True

        result = await service.toggle(UNIT)

        assert result.committed is False
        assert result.advisory == LIKE_FAILED_ADVISORY
        assert (result.liked, result.count) == (True, 1)
        assert service.visible(UNIT).liked is True

    @pytest.mark.asyncio
    async def test_unreadable_ledger_raises(self, ledger):
        ledger.fail = True
        service = LikeService(ledger, "learner-1", backoff_seconds=0)
        with pytest.raises(LikeTransactionError):
            await service.toggle(UNIT)
        assert not service.is_pending(UNIT)

    @pytest.mark.asyncio
    async def test_toggle_while_pending_is_ignored(self, ledger):
        service = LikeService(ledger, "learner-1", backoff_seconds=0)
        first = asyncio.create_task(service.toggle(UNIT))
        await asyncio.sleep(0)

        second = await service.toggle(UNIT)
        assert second.ignored is True

        result = await first
        assert result.liked is True
        assert ledger.counts[UNIT.feed_id] == 1


class TestTransaction:
    """Read, compare-and-set, retry."""

    @pytest.mark.asyncio
    async def test_concurrent_likes_are_all_counted(self, ledger):
        services = [
            LikeService(ledger, f"learner-{i}", max_attempts=60, backoff_seconds=0)
            for i in range(50)
        ]

        results = await asyncio.gather(*(s.toggle(UNIT) for s in services))

        assert all(r.committed for r in results)
        assert ledger.counts[UNIT.feed_id] == 50
        assert len(ledger.markers) == 50
        assert ledger.conflicts > 0

    @pytest.mark.asyncio
    async def test_target_state_already_reached(self, ledger):
        # Liked from another device in the meantime
        ledger.markers.add((UNIT.feed_id, "learner-1"))
        ledger.counts[UNIT.feed_id] = 3

        snapshot = await run_like_transaction(ledger, UNIT.key, "learner-1", True, backoff_seconds=0)

        assert (snapshot.liked, snapshot.count) == (True, 3)
        assert ledger.counts[UNIT.feed_id] == 3

    @pytest.mark.asyncio
    async def test_exhausted_attempts(self, ledger):
        ledger.compare_and_set = AsyncMock(return_value=False)
        with pytest.raises(LikeTransactionError):
            await run_like_transaction(
                ledger, UNIT.key, "learner-1", True, max_attempts=3, backoff_seconds=0
            )
        assert ledger.compare_and_set.await_count == 3


class TestCassandraLikeLedger:
    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(return_value=Mock())
        session.aexecute = AsyncMock(return_value=Mock(was_applied=True))
        return session

    @pytest.mark.asyncio
    async def test_first_like_accepts_missing_counter(self, mock_session):
        ledger = CassandraLikeLedger(mock_session, "test_ks")

        assert await ledger.compare_and_set(UNIT.key, "learner-1", 0, True)

        params = mock_session.aexecute.call_args.args[1]
        assert params[:2] == [UNIT.feed_id, "learner-1"]
        assert params[3:] == [1, UNIT.feed_id, 0, None]

    @pytest.mark.asyncio
    async def test_unlike_decrements(self, mock_session):
        ledger = CassandraLikeLedger(mock_session, "test_ks")

        await ledger.compare_and_set(UNIT.key, "learner-1", 3, False)

        params = mock_session.aexecute.call_args.args[1]
        assert params == [UNIT.feed_id, "learner-1", 2, UNIT.feed_id, 3, 3]

    @pytest.mark.asyncio
    async def test_read_without_rows(self, mock_session):
        empty = Mock()
        empty.one.return_value = None
        mock_session.aexecute.return_value = empty
        ledger = CassandraLikeLedger(mock_session, "test_ks")

        snapshot = await ledger.read(UNIT.key, "learner-1")

        assert (snapshot.liked, snapshot.count) == (False, 0)
