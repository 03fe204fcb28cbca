"""Progress persistence tiers.

Three collaborators back the progress store:
- RemoteProgressLedger: authoritative per-enrollment records (async)
- SeenLedger: cross-enrollment completion memory per learner (async)
- LocalCache: synchronous, lossy key-value cache of the three progress maps

Remote writes are partial upserts: only the columns present in the partial
are written, every other column keeps its stored value.
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from .models import LocalCacheSnapshot, ProgressRecord, SeenEntry


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Columns a partial progress write may carry
PROGRESS_COLUMNS = ("progress_pct", "completed", "seen", "completed_at", "updated_at")


class RemoteProgressLedger(Protocol):
    """Durable per-enrollment progress records."""

    async def get(self, scope: str) -> dict[str, ProgressRecord]: ...

    async def set(
        self,
        scope: str,
        feed_id: str,
        partial: dict[str, Any],
        write_time_us: int | None = None,
    ) -> None: ...


class SeenLedger(Protocol):
    """Durable cross-enrollment seen memory."""

    async def get(self, learner_id: str) -> dict[str, SeenEntry]: ...

    async def set(self, learner_id: str, feed_id: str, entry: SeenEntry) -> None: ...


class LocalCache(Protocol):
    """Synchronous local cache; may be wiped at any time."""

    def read(self, learner_id: str) -> LocalCacheSnapshot: ...

    def write(self, learner_id: str, snapshot: LocalCacheSnapshot) -> None: ...


# ==============================================================================
# Cassandra Ledgers
# ==============================================================================


class CassandraProgressLedger:
    """Remote progress ledger on the unit_progress table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._update_statements: dict[tuple[str, ...], Any] = {}
        self._get_scope_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.unit_progress
            WHERE enrollment_scope = ?
        """)

    def _update_statement(self, columns: tuple[str, ...]) -> Any:
        """Prepared UPDATE for exactly the given column set (cached)."""
        statement = self._update_statements.get(columns)
        if statement is None:
            assignments = ", ".join(f"{column} = ?" for column in columns)
            statement = self.session.prepare(f"""
                UPDATE {self.keyspace}.unit_progress
                USING TIMESTAMP ?
                SET {assignments}
                WHERE enrollment_scope = ? AND feed_id = ?
            """)
            self._update_statements[columns] = statement
        return statement

    async def get(self, scope: str) -> dict[str, ProgressRecord]:
        rows = await self.session.aexecute(self._get_scope_progress, [scope])
        return {row.feed_id: ProgressRecord.from_row(row) for row in rows}

    async def set(
        self,
        scope: str,
        feed_id: str,
        partial: dict[str, Any],
        write_time_us: int | None = None,
    ) -> None:
        """Upsert only the columns present in ``partial``.

        Cassandra resolves concurrent writes by write timestamp, so callers
        pass the time the reading was taken: a slow, older (lower) write that
        lands late still loses to a newer one.
        """
        columns = tuple(c for c in PROGRESS_COLUMNS if c in partial)
        if not columns:
            return
        if write_time_us is None:
            write_time_us = int(datetime.now(UTC).timestamp() * 1_000_000)
        await self.session.aexecute(
            self._update_statement(columns),
            [write_time_us, *(partial[c] for c in columns), scope, feed_id],
        )


class CassandraSeenLedger:
    """Seen ledger on the seen_units table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_seen = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.seen_units
            WHERE learner_id = ?
        """)
        self._upsert_seen = self.session.prepare(f"""
            UPDATE {self.keyspace}.seen_units
            SET seen = ?, progress = ?, updated_at = ?
            WHERE learner_id = ? AND feed_id = ?
        """)

    async def get(self, learner_id: str) -> dict[str, SeenEntry]:
        rows = await self.session.aexecute(self._get_seen, [learner_id])
        return {row.feed_id: SeenEntry.from_row(row) for row in rows}

    async def set(self, learner_id: str, feed_id: str, entry: SeenEntry) -> None:
        await self.session.aexecute(
            self._upsert_seen,
            [entry.seen, entry.progress, datetime.now(UTC), learner_id, feed_id],
        )


# ==============================================================================
# Local Caches
# ==============================================================================


class FileLocalCache:
    """One orjson file per learner under a cache directory.

    Unreadable files read as an empty cache and failed writes are logged and
    dropped: the tier is a cache, never the source of truth.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, learner_id: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in learner_id)
        return self.directory / f"progress-{safe}.json"

    def read(self, learner_id: str) -> LocalCacheSnapshot:
        try:
            raw = self._path(learner_id).read_bytes()
        except FileNotFoundError:
            return LocalCacheSnapshot()
        except OSError as e:
            logger.warning("local_cache_read_failed", error=str(e))
            return LocalCacheSnapshot()
        return LocalCacheSnapshot.from_bytes(raw)

    def write(self, learner_id: str, snapshot: LocalCacheSnapshot) -> None:
        path = self._path(learner_id)
        tmp = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(snapshot.to_bytes())
            tmp.replace(path)
        except OSError as e:
            logger.warning("local_cache_write_failed", error=str(e))


class MemoryLocalCache:
    """Volatile in-process cache (lost on restart, like private browsing)."""

    def __init__(self) -> None:
        self._entries: dict[str, bytes] = {}

    def read(self, learner_id: str) -> LocalCacheSnapshot:
        return LocalCacheSnapshot.from_bytes(self._entries.get(learner_id))

    def write(self, learner_id: str, snapshot: LocalCacheSnapshot) -> None:
        self._entries[learner_id] = snapshot.to_bytes()

    def wipe(self, learner_id: str | None = None) -> None:
        if learner_id is None:
            self._entries.clear()
        else:
            self._entries.pop(learner_id, None)


def build_local_cache(settings) -> LocalCache:
    """Local cache backend selected by settings."""
    if settings.local_cache_backend == "memory":
        return MemoryLocalCache()
    return FileLocalCache(settings.local_cache_dir)
