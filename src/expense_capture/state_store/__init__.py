"""
Record Store (SQLite-based).

Durable local queue of capture records:
- Pending records awaiting delivery to the remote spreadsheet
- Synced records kept indefinitely as an audit trail
- Process-wide state (last successful sync)

Every operation validates the database handle and reopens it when stale.
"""

from .sqlite_store import (
    CaptureRecord,
    PersistenceError,
    RecordStore,
)

__all__ = [
    "RecordStore",
    "CaptureRecord",
    "PersistenceError",
]
