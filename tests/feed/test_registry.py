"""Tests for the in-process session registry."""

from unittest.mock import patch

import pytest

from coursefeed.feed.registry import FeedSessionRegistry
from coursefeed.feed.session import SessionNotStartedError
from tests.fakes import FakeClock, make_backends, make_settings, sample_courses


@pytest.fixture
def backends():
    return make_backends(sample_courses())


@pytest.fixture
def registry(backends) -> FeedSessionRegistry:
    return FeedSessionRegistry(backends, make_settings(), FakeClock())


class TestRegistry:
    """One session per learner."""

    @pytest.mark.asyncio
    async def test_start_and_get(self, registry):
        session = await registry.start("learner-1")
        assert registry.get("learner-1") is session
        assert len(registry) == 1

    def test_get_before_start(self, registry):
        with pytest.raises(SessionNotStartedError):
            registry.get("learner-1")

    @pytest.mark.asyncio
    async def test_restart_flushes_previous_session(self, registry, backends):
        first = await registry.start("learner-1")
        first.record_signal("c1-a", "time_update", current_time=3, duration=100)

        second = await registry.start("learner-1")

        assert second is not first
        assert backends.remote_progress.records["scope-1"]["c1-a"].progress_pct == 3
        # Reconciled from the flushed remote state
        assert second.store.effective_progress("c1-a") == 3

    @pytest.mark.asyncio
    async def test_get_or_start_reuses_session(self, registry):
        session = await registry.get_or_start("learner-1")
        assert await registry.get_or_start("learner-1") is session

    @pytest.mark.asyncio
    async def test_close(self, registry):
        await registry.start("learner-1")
        await registry.close("learner-1")
        with pytest.raises(SessionNotStartedError):
            registry.get("learner-1")

    @pytest.mark.asyncio
    async def test_close_all(self, registry):
        await registry.start("learner-1")
        await registry.start("learner-2")
        with patch("coursefeed.feed.registry.logger") as mock_logger:
            await registry.close_all()
        assert len(registry) == 0
        mock_logger.info.assert_called_with("feed_sessions_closed")
