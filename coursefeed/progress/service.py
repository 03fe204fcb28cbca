"""Progress store: watermark merge, two-tier persistence, reconciliation.

Business logic for:
- Recording raw progress readings with watermark (max) semantics
- Synchronous local-cache writes on every change and on lifecycle triggers
- Throttled remote writes (coarse watermark steps and first completion)
- Reconciling remote, local and seen-ledger state once per session
- Recording completion in the cross-enrollment seen ledger
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Coroutine
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog

from coursefeed.completion.policy import CompletionPolicy
from coursefeed.units.models import Unit

from .ledgers import LocalCache, RemoteProgressLedger, SeenLedger
from .models import LocalCacheSnapshot, ProgressRecord, SeenEntry, clamp_pct


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Remote writes happen each time the watermark crosses this many points
DEFAULT_FLUSH_STEP_PCT = 2


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidReadingError(ProgressError):
    """A progress reading is not a number."""

    def __init__(self, message: str = "Progress reading must be a number"):
        super().__init__(message, "invalid_reading")


# ==============================================================================
# Progress Store
# ==============================================================================


class ProgressStore:
    """Owns the in-memory progress of one learner session.

    The in-memory map is what the feed reads synchronously; the local cache
    mirrors it on every change; the remote ledgers are written in the
    background and never block a caller.
    """

    def __init__(
        self,
        learner_id: str,
        enrollment_scope: str | None,
        policy: CompletionPolicy,
        remote: RemoteProgressLedger,
        seen_ledger: SeenLedger,
        local_cache: LocalCache,
        flush_step_pct: int = DEFAULT_FLUSH_STEP_PCT,
    ):
        self.learner_id = learner_id
        self.enrollment_scope = enrollment_scope
        self.policy = policy
        self.remote = remote
        self.seen_ledger = seen_ledger
        self.local_cache = local_cache
        self.flush_step_pct = max(1, flush_step_pct)

        self._records: dict[str, ProgressRecord] = {}
        self._units: dict[str, Unit] = {}
        self._dirty: set[str] = set()
        self._seen_recorded: set[str] = set()
        self._seen_pending: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._last_write_us = 0
        self.reconciled = False

    # ==========================================================================
    # Reads
    # ==========================================================================

    def register_units(self, units: list[Unit]) -> None:
        """Make unit types known so thresholds apply during reconciliation."""
        for unit in units:
            self._units[unit.feed_id] = unit

    def get(self, feed_id: str) -> ProgressRecord | None:
        return self._records.get(feed_id)

    def effective_progress(self, feed_id: str) -> float:
        return self.policy.effective_progress(self._records.get(feed_id))

    def is_complete(self, unit: Unit, forum_satisfied: bool) -> bool:
        return self.policy.is_complete(
            self._records.get(unit.feed_id), unit, forum_satisfied
        )

    def snapshot(self) -> LocalCacheSnapshot:
        snapshot = LocalCacheSnapshot()
        for record in self._records.values():
            snapshot.put(record)
        return snapshot

    @property
    def dirty(self) -> frozenset[str]:
        return frozenset(self._dirty)

    # ==========================================================================
    # Writes
    # ==========================================================================

    def record_progress(self, unit: Unit, pct: float) -> ProgressRecord:
        """Merge a reading into the watermark of a unit.

        Returns the stored record (unchanged when the reading is not higher).
        """
        try:
            reading = clamp_pct(float(pct))
        except (TypeError, ValueError) as e:
            raise InvalidReadingError from e

        self._units.setdefault(unit.feed_id, unit)
        current = self._records.get(unit.feed_id) or ProgressRecord(unit.feed_id)
        merged = max(reading, current.progress_pct)
        if merged == current.progress_pct:
            return current

        now = datetime.now(UTC)
        just_completed = not current.completed and self.policy.reaches_threshold(
            merged, unit
        )
        completed = current.completed or just_completed
        record = ProgressRecord(
            feed_id=unit.feed_id,
            progress_pct=merged,
            completed=completed,
            seen=current.seen or completed,
            completed_at=current.completed_at or (now if just_completed else None),
            updated_at=now,
        )
        self._records[unit.feed_id] = record
        self._dirty.add(unit.feed_id)
        self._write_local()

        step = self.flush_step_pct
        crossed_step = math.floor(merged / step) > math.floor(current.progress_pct / step)
        if crossed_step or just_completed:
            self._schedule_remote_write(unit.feed_id, include_completed_at=just_completed)

        if just_completed:
            logger.info(
                "unit_completed",
                feed_id=unit.feed_id,
                content_type=unit.content_type.value,
                progress=record.progress_pct,
            )
            self._schedule_seen_write(unit.feed_id)

        return record

    def _write_local(self) -> None:
        """Mirror the in-memory state to the local cache, synchronously."""
        self.local_cache.write(self.learner_id, self.snapshot())

    def _next_write_time_us(self) -> int:
        now_us = int(time.time() * 1_000_000)
        self._last_write_us = max(now_us, self._last_write_us + 1)
        return self._last_write_us

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: the record stays dirty and the next flush sends it
            coro.close()
            return False
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def _schedule_remote_write(
        self, feed_id: str, include_completed_at: bool = False
    ) -> None:
        if not self.enrollment_scope:
            return
        record = self._records[feed_id].copy()
        partial: dict[str, Any] = {
            "progress_pct": record.progress_pct,
            "completed": record.completed,
            "seen": record.seen,
            "updated_at": record.updated_at or datetime.now(UTC),
        }
        if include_completed_at and record.completed_at is not None:
            partial["completed_at"] = record.completed_at
        self._spawn(
            self._write_remote(
                self.enrollment_scope, record, partial, self._next_write_time_us()
            )
        )

    async def _write_remote(
        self,
        scope: str,
        record: ProgressRecord,
        partial: dict[str, Any],
        write_time_us: int,
    ) -> None:
        try:
            await self.remote.set(scope, record.feed_id, partial, write_time_us)
        except Exception as e:
            # The local cache stays authoritative until a later write succeeds
            logger.warning(
                "progress_remote_write_failed",
                feed_id=record.feed_id,
                progress=record.progress_pct,
                error=str(e),
            )
            return
        stored = self._records.get(record.feed_id)
        if stored is not None and stored.progress_pct <= record.progress_pct:
            self._dirty.discard(record.feed_id)

    def _schedule_seen_write(self, feed_id: str) -> None:
        if feed_id in self._seen_recorded or feed_id in self._seen_pending:
            return
        if self._spawn(self._write_seen(feed_id)):
            self._seen_pending.add(feed_id)

    async def _write_seen(self, feed_id: str) -> None:
        try:
            await self.seen_ledger.set(
                self.learner_id, feed_id, SeenEntry(seen=True, progress=100.0)
            )
        except Exception as e:
            logger.warning("seen_ledger_write_failed", feed_id=feed_id, error=str(e))
            return
        finally:
            self._seen_pending.discard(feed_id)
        self._seen_recorded.add(feed_id)

    # ==========================================================================
    # Lifecycle Triggers
    # ==========================================================================

    def persist(self, trigger: str) -> None:
        """Write the local cache now and push every dirty record remotely."""
        self._write_local()
        dirty = sorted(self._dirty)
        for feed_id in dirty:
            self._schedule_remote_write(feed_id)
        logger.debug("progress_persisted", trigger=trigger, dirty=len(dirty))

    def on_visibility_hidden(self) -> None:
        self.persist("visibility_hidden")

    def on_page_teardown(self) -> None:
        self.persist("page_teardown")

    def on_before_unload(self) -> None:
        self.persist("before_unload")

    async def flush(self) -> None:
        """Push every dirty record and wait for all background writes."""
        self.persist("flush")
        await self.drain()

    async def drain(self) -> None:
        """Wait for in-flight background writes (failures already logged)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    async def _load_or_empty(self, source: str, awaitable: Awaitable[dict[str, T]]) -> dict[str, T]:
        try:
            return await awaitable
        except Exception as e:
            logger.warning("progress_source_unavailable", source=source, error=str(e))
            return {}

    def _threshold_met(self, feed_id: str, pct: float) -> bool:
        unit = self._units.get(feed_id)
        if unit is None:
            return pct >= self.policy.completion_threshold_pct
        return self.policy.reaches_threshold(pct, unit)

    async def reconcile(self) -> dict[str, ProgressRecord]:
        """Merge remote, local and seen-ledger state into the in-memory map.

        Every field takes the most permissive value (never the newest one:
        clocks are untrusted). Running it twice without writes in between
        yields the same state.
        """
        remote: dict[str, ProgressRecord] = {}
        if self.enrollment_scope:
            remote = await self._load_or_empty(
                "remote", self.remote.get(self.enrollment_scope)
            )
        local = self.local_cache.read(self.learner_id)
        seen = await self._load_or_empty("seen_ledger", self.seen_ledger.get(self.learner_id))

        feed_ids = (
            set(remote)
            | set(local.progress)
            | set(local.completed)
            | set(local.seen)
            | set(seen)
            | set(self._records)
        )

        reconciled: dict[str, ProgressRecord] = {}
        for feed_id in feed_ids:
            candidates = [
                record
                for record in (
                    remote.get(feed_id),
                    local.record(feed_id),
                    self._records.get(feed_id),
                )
                if record is not None
            ]
            seen_entry = seen.get(feed_id)
            ledger_seen = bool(seen_entry and seen_entry.seen)

            progress = max((r.progress_pct for r in candidates), default=0.0)
            if ledger_seen:
                progress = max(100.0, progress)
            completed = (
                any(r.is_completed for r in candidates)
                or ledger_seen
                or self._threshold_met(feed_id, progress)
            )
            completed_at = min(
                (r.completed_at for r in candidates if r.completed_at is not None),
                default=None,
            )
            record = ProgressRecord(
                feed_id=feed_id,
                progress_pct=progress,
                completed=completed,
                seen=completed,
                completed_at=completed_at,
                updated_at=max(
                    (r.updated_at for r in candidates if r.updated_at is not None),
                    default=None,
                ),
            )
            reconciled[feed_id] = record

            remote_record = remote.get(feed_id)
            if remote_record is None or remote_record != record:
                self._dirty.add(feed_id)
            if ledger_seen:
                self._seen_recorded.add(feed_id)
            elif completed:
                self._schedule_seen_write(feed_id)

        self._records = reconciled
        self._write_local()
        self.reconciled = True

        logger.info(
            "progress_reconciled",
            units=len(reconciled),
            completed=sum(1 for r in reconciled.values() if r.completed),
            remote=len(remote),
            local=len(local.progress),
            seen=len(seen),
        )
        return dict(reconciled)
