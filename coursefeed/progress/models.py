"""Models for learner progress.

Cassandra table definitions for:
- Unit progress: watermark/completion per enrollment scope and unit
- Seen units: cross-enrollment completion memory per learner and unit

Plus the in-process entities:
- ProgressRecord: one per (learner, unit), watermark semantics
- SeenEntry: one seen-ledger row
- LocalCacheSnapshot: the three maps persisted to the local cache
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import orjson


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def clamp_pct(value: float) -> float:
    """Clamp a reading into [0, 100]; NaN reads as 0."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(100.0, float(value)))


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progress per enrollment scope (group/cohort enrollment)
# Partition key: enrollment_scope, so a session loads every unit in one read
UNIT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.unit_progress (
    enrollment_scope TEXT,
    feed_id TEXT,
    progress_pct DOUBLE,
    completed BOOLEAN,
    seen BOOLEAN,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((enrollment_scope), feed_id)
)
"""

# Seen units per learner, independent of enrollment
# Survives re-enrollment into another cohort of the same course
SEEN_UNITS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.seen_units (
    learner_id TEXT,
    feed_id TEXT,
    seen BOOLEAN,
    progress DOUBLE,
    updated_at TIMESTAMP,
    PRIMARY KEY ((learner_id), feed_id)
)
"""

PROGRESS_TABLES_CQL = [
    UNIT_PROGRESS_TABLE_CQL,
    SEEN_UNITS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ProgressRecord:
    """Progress of one learner on one unit.

    Attributes:
        feed_id: Synthetic unit id (course id + content id)
        progress_pct: Highest reading ever observed (0-100)
        completed: Unit reached its completion threshold
        seen: Sticky completion memory; readers treat it as completed
        completed_at: First completion timestamp (set once)
        updated_at: Last change timestamp
    """

    def __init__(
        self,
        feed_id: str,
        progress_pct: float = 0.0,
        completed: bool = False,
        seen: bool = False,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.feed_id = feed_id
        self.completed = bool(completed)
        self.seen = bool(seen)
        self.progress_pct = 100.0 if self.completed else clamp_pct(progress_pct)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def is_completed(self) -> bool:
        """Completed as far as readers are concerned (seen implies completed)."""
        return self.completed or self.seen

    def copy(self) -> "ProgressRecord":
        return ProgressRecord(
            feed_id=self.feed_id,
            progress_pct=self.progress_pct,
            completed=self.completed,
            seen=self.seen,
            completed_at=self.completed_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_row(cls, row: Any) -> "ProgressRecord":
        """Create ProgressRecord from a Cassandra row."""
        return cls(
            feed_id=row.feed_id,
            progress_pct=row.progress_pct or 0.0,
            completed=bool(row.completed),
            seen=bool(row.seen) or bool(row.completed),
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "progress_pct": self.progress_pct,
            "completed": self.completed,
            "seen": self.seen,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgressRecord):
            return NotImplemented
        return (
            self.feed_id == other.feed_id
            and self.progress_pct == other.progress_pct
            and self.completed == other.completed
            and self.seen == other.seen
        )

    def __repr__(self) -> str:
        flags = "completed" if self.completed else "seen" if self.seen else "open"
        return f"<ProgressRecord {self.feed_id} {self.progress_pct:.1f}% {flags}>"


@dataclass
class SeenEntry:
    """One row of the cross-enrollment seen ledger."""

    seen: bool = False
    progress: float = 0.0

    @classmethod
    def from_row(cls, row: Any) -> "SeenEntry":
        return cls(seen=bool(row.seen), progress=row.progress or 0.0)


@dataclass
class LocalCacheSnapshot:
    """Progress/completed/seen maps as persisted in the local cache."""

    progress: dict[str, float] = field(default_factory=dict)
    completed: dict[str, bool] = field(default_factory=dict)
    seen: dict[str, bool] = field(default_factory=dict)

    def record(self, feed_id: str) -> ProgressRecord | None:
        """Rebuild the cached record of a unit, if any key mentions it."""
        if (
            feed_id not in self.progress
            and feed_id not in self.completed
            and feed_id not in self.seen
        ):
            return None
        return ProgressRecord(
            feed_id=feed_id,
            progress_pct=self.progress.get(feed_id, 0.0),
            completed=self.completed.get(feed_id, False),
            seen=self.seen.get(feed_id, False),
        )

    def put(self, record: ProgressRecord) -> None:
        self.progress[record.feed_id] = record.progress_pct
        self.completed[record.feed_id] = record.completed
        self.seen[record.feed_id] = record.seen

    def to_bytes(self) -> bytes:
        return orjson.dumps(
            {"progress": self.progress, "completed": self.completed, "seen": self.seen}
        )

    @classmethod
    def from_bytes(cls, raw: bytes | str | None) -> "LocalCacheSnapshot":
        """Parse a cached snapshot; anything unreadable is an empty cache.

        Entries with a value of the wrong type are dropped one by one.
        """
        if not raw:
            return cls()
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError:
            return cls()
        if not isinstance(parsed, dict):
            return cls()
        return cls(
            progress=_read_map(parsed.get("progress"), _as_pct),
            completed=_read_map(parsed.get("completed"), _as_flag),
            seen=_read_map(parsed.get("seen"), _as_flag),
        )


def _as_pct(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError(f"not a percentage: {value!r}")
    pct = float(value)
    if not math.isfinite(pct):
        raise ValueError(f"not a percentage: {value!r}")
    return pct


def _as_flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"not a flag: {value!r}")
    return value


def _read_map(value: Any, convert: Callable[[Any], Any]) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    result: dict[str, Any] = {}
    for key, item in value.items():
        try:
            result[key] = convert(item)
        except (TypeError, ValueError):
            continue
    return result
