"""Learner progress tracking module.

Provides:
- Watermark progress records per (learner, unit)
- Remote, seen-ledger and local-cache persistence tiers
- The per-session progress store with reconciliation
"""

from .models import (
    PROGRESS_TABLES_CQL,
    LocalCacheSnapshot,
    ProgressRecord,
    SeenEntry,
)
from .ledgers import (
    CassandraProgressLedger,
    CassandraSeenLedger,
    FileLocalCache,
    LocalCache,
    MemoryLocalCache,
    RemoteProgressLedger,
    SeenLedger,
    build_local_cache,
)
from .service import InvalidReadingError, ProgressError, ProgressStore


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CassandraProgressLedger",
    "CassandraSeenLedger",
    "FileLocalCache",
    "InvalidReadingError",
    "LocalCache",
    "LocalCacheSnapshot",
    "MemoryLocalCache",
    "ProgressError",
    "ProgressRecord",
    "ProgressStore",
    "RemoteProgressLedger",
    "SeenEntry",
    "SeenLedger",
    "build_local_cache",
]
