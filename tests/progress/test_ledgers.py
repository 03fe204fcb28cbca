"""Tests for the Cassandra progress ledgers and local caches."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra.cluster import Session

from coursefeed.progress.ledgers import (
    CassandraProgressLedger,
    CassandraSeenLedger,
    FileLocalCache,
    MemoryLocalCache,
    build_local_cache,
)
from coursefeed.progress.models import LocalCacheSnapshot, ProgressRecord, SeenEntry
from tests.fakes import make_settings


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(query_string=cql))
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock(return_value=[])
    return session


def progress_row(feed_id: str, pct: float, completed: bool = False, seen: bool = False):
    return Mock(
        feed_id=feed_id,
        progress_pct=pct,
        completed=completed,
        seen=seen,
        completed_at=None,
        updated_at=datetime(2024, 1, 1),
    )


class TestCassandraProgressLedger:
    """Remote progress ledger on unit_progress."""

    @pytest.mark.asyncio
    async def test_get_maps_rows(self, mock_session):
        mock_session.aexecute.return_value = [
            progress_row("c1-a", 40),
            progress_row("c1-b", 100, completed=True),
        ]
        ledger = CassandraProgressLedger(mock_session, "test_ks")

        records = await ledger.get("scope-1")

        assert records["c1-a"].progress_pct == 40
        assert records["c1-b"].completed is True
        assert records["c1-b"].seen is True
        assert records["c1-a"].updated_at.tzinfo is UTC

    @pytest.mark.asyncio
    async def test_set_writes_only_given_columns(self, mock_session):
        ledger = CassandraProgressLedger(mock_session, "test_ks")

        await ledger.set("scope-1", "c1-a", {"progress_pct": 12.0, "seen": False}, 1234)

        statement, params = mock_session.aexecute.call_args.args
        assert "USING TIMESTAMP ?" in statement.query_string
        assert "progress_pct = ?, seen = ?" in statement.query_string
        assert "completed" not in statement.query_string
        assert params == [1234, 12.0, False, "scope-1", "c1-a"]

    @pytest.mark.asyncio
    async def test_statement_prepared_once_per_column_set(self, mock_session):
        ledger = CassandraProgressLedger(mock_session, "test_ks")
        prepared = mock_session.prepare.call_count

        await ledger.set("s", "a", {"progress_pct": 1.0}, 1)
        await ledger.set("s", "a", {"progress_pct": 2.0}, 2)

        assert mock_session.prepare.call_count == prepared + 1

    @pytest.mark.asyncio
    async def test_empty_partial_is_noop(self, mock_session):
        ledger = CassandraProgressLedger(mock_session, "test_ks")
        await ledger.set("s", "a", {})
        mock_session.aexecute.assert_not_called()


class TestCassandraSeenLedger:
    """Seen ledger on seen_units."""

    @pytest.mark.asyncio
    async def test_get_and_set(self, mock_session):
        mock_session.aexecute.return_value = [Mock(feed_id="c1-a", seen=True, progress=100.0)]
        ledger = CassandraSeenLedger(mock_session, "test_ks")

        entries = await ledger.get("learner-1")
        assert entries == {"c1-a": SeenEntry(seen=True, progress=100.0)}

        await ledger.set("learner-1", "c1-b", SeenEntry(seen=True, progress=100.0))
        params = mock_session.aexecute.call_args.args[1]
        assert params[0] is True
        assert params[-2:] == ["learner-1", "c1-b"]


class TestLocalCaches:
    """Local cache tiers are lossy but never fail the caller."""

    def test_file_cache_round_trip(self, tmp_path):
        cache = FileLocalCache(tmp_path)
        snapshot = LocalCacheSnapshot()
        snapshot.put(ProgressRecord("c1-a", 42))
        cache.write("learner/1", snapshot)

        restored = cache.read("learner/1")
        assert restored.progress == {"c1-a": 42}
        assert restored.completed == {"c1-a": False}

    def test_file_cache_missing_reads_empty(self, tmp_path):
        assert FileLocalCache(tmp_path).read("nobody").progress == {}

    def test_corrupt_file_reads_empty(self, tmp_path):
        cache = FileLocalCache(tmp_path)
        cache.write("learner-1", LocalCacheSnapshot())
        next(tmp_path.glob("progress-*.json")).write_text("{not json")
        assert cache.read("learner-1").progress == {}

    @pytest.mark.parametrize(
        "raw",
        [
            b'{"progress": {"c1-a": "abc"}}',
            b'{"progress": [1]}',
            b'{"progress": {"c1-a": null}, "completed": {"c1-a": "yes"}}',
            b'{"progress": {"c1-a": NaN}}',
            b"[1, 2]",
        ],
    )
    def test_malformed_entries_read_empty(self, raw):
        snapshot = LocalCacheSnapshot.from_bytes(raw)
        assert snapshot.progress == {}
        assert snapshot.completed == {}
        assert snapshot.record("c1-a") is None

    def test_malformed_entries_are_dropped_individually(self):
        snapshot = LocalCacheSnapshot.from_bytes(
            b'{"progress": {"c1-a": 55, "c1-b": "abc"}, "seen": {"c1-a": true, "c1-b": 1}}'
        )
        assert snapshot.progress == {"c1-a": 55.0}
        assert snapshot.seen == {"c1-a": True}

    def test_memory_cache_wipe(self):
        cache = MemoryLocalCache()
        snapshot = LocalCacheSnapshot()
        snapshot.put(ProgressRecord("c1-a", 10))
        cache.write("learner-1", snapshot)
        cache.wipe("learner-1")
        assert cache.read("learner-1").progress == {}

    def test_backend_selected_by_settings(self, tmp_path):
        assert isinstance(build_local_cache(make_settings()), MemoryLocalCache)
        file_cache = build_local_cache(
            make_settings(local_cache_backend="file", local_cache_dir=str(tmp_path))
        )
        assert isinstance(file_cache, FileLocalCache)
