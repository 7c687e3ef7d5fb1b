"""
SQLite-based record store implementation.

Tables:
- capture_records: One row per reimbursement claim, pending or synced
- app_state: Process-wide key/value state (last successful sync)

The schema is created idempotently on every (re)open.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync_at"

# Columns a caller may set on append; everything else is owned by the store
RECORD_FIELDS = (
    "date",
    "description",
    "document_number",
    "project",
    "amount",
    "requester",
    "photo",
)


class PersistenceError(Exception):
    """The local store is unavailable or a write did not commit."""

    pass


def utc_now() -> str:
    """Current UTC time as ISO-8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CaptureRecord:
    """A single reimbursement claim awaiting or having completed upload."""

    id: int
    date: str
    description: str
    document_number: str
    project: str
    amount: str
    requester: str
    photo: str  # data URI captured on device
    created_at: str  # ISO timestamp
    synced: bool
    synced_at: str | None
    photo_ref: str | None = None  # remote reference once uploaded

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CaptureRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            date=row["date"],
            description=row["description"],
            document_number=row["document_number"],
            project=row["project"],
            amount=row["amount"],
            requester=row["requester"],
            photo=row["photo"],
            created_at=row["created_at"],
            synced=bool(row["synced"]),
            synced_at=row["synced_at"],
            photo_ref=row["photo_ref"],
        )

    @property
    def effective_photo(self) -> str:
        """The remote reference when uploaded, else the local payload."""
        return self.photo_ref or self.photo

    def to_sink_payload(self, photo_ref: str) -> dict[str, str]:
        """Row sent to the remote spreadsheet."""
        return {
            "date": self.date,
            "description": self.description,
            "documentNumber": self.document_number,
            "project": self.project,
            "amount": self.amount,
            "requester": self.requester,
            "photoRef": photo_ref,
        }


class RecordStore:
    """
    SQLite-backed durable queue of capture records.

    Owns a single lazily-established connection. Every public operation
    validates the handle first and transparently reopens and reinitializes
    it when it was closed, the database file was replaced, or the schema
    disappeared underneath us.

    Thread-safe: operations are serialized on an internal lock.
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize record store.

        Args:
            db_path: Path to SQLite database file

        Raises:
            PersistenceError: If the database cannot be created
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._get_connection()

    # Connection handling

    def _open(self) -> sqlite3.Connection:
        """Open and initialize a fresh connection."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._init_db(conn)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to open record store at {self.db_path}: {e}")
            raise PersistenceError(f"Cannot open record store at {self.db_path}: {e}") from e
        return conn

    def _is_valid(self, conn: sqlite3.Connection) -> bool:
        """Check that a connection is open and still sees our schema."""
        if not self.db_path.exists():
            return False
        try:
            tables = {
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                ).fetchall()
            }
        except (sqlite3.ProgrammingError, sqlite3.DatabaseError):
            return False
        return {"capture_records", "app_state"} <= tables

    def _get_connection(self) -> sqlite3.Connection:
        """Return a live connection, reopening it if it went stale."""
        with self._lock:
            if self._conn is not None and self._is_valid(self._conn):
                return self._conn

            if self._conn is not None:
                logger.warning("Record store handle is stale, reopening %s", self.db_path)
                try:
                    self._conn.close()
                except sqlite3.Error:
                    pass

            self._conn = None
            self._conn = self._open()
            return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                try:
                    conn.rollback()
                except sqlite3.Error:
                    pass
                raise PersistenceError(f"Record store operation failed: {e}") from e
            except Exception:
                conn.rollback()
                raise

    def _init_db(self, conn: sqlite3.Connection) -> None:
        """Initialize database schema."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS capture_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                document_number TEXT NOT NULL DEFAULT '',
                project TEXT NOT NULL DEFAULT '',
                amount TEXT NOT NULL DEFAULT '',
                requester TEXT NOT NULL DEFAULT '',
                photo TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0,
                synced_at TEXT,
                photo_ref TEXT
            )
        """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS app_state (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT NOT NULL
            )
        """
        )

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_capture_records_synced ON capture_records(synced)"
        )

        conn.commit()

    def close(self) -> None:
        """Close the underlying connection. The next operation reopens it."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # Record methods

    def append(self, fields: Mapping[str, Any] | object) -> int:
        """
        Create a pending record. Returns the new record ID.

        fields is a mapping, or a form object: one with to_record_fields()
        (CaptureDraft) or with attributes named after the columns.
        Unknown keys are ignored; id, created_at and sync state are always
        assigned here.

        Raises:
            PersistenceError: If the store is unavailable or the insert fails
        """
        if not isinstance(fields, Mapping):
            if hasattr(fields, "to_record_fields"):
                fields = fields.to_record_fields()
            else:
                fields = {name: getattr(fields, name, "") for name in RECORD_FIELDS}

        values = {name: str(fields.get(name) or "") for name in RECORD_FIELDS}
        if not values["date"]:
            values["date"] = datetime.now().date().isoformat()
        now = utc_now()

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO capture_records
                (date, description, document_number, project, amount, requester, photo,
                 created_at, synced)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
            """,
                (
                    values["date"],
                    values["description"],
                    values["document_number"],
                    values["project"],
                    values["amount"],
                    values["requester"],
                    values["photo"],
                    now,
                ),
            )
            record_id = cursor.lastrowid
            if not record_id:
                raise PersistenceError("Insert did not return a record id")

        logger.info(f"Queued record #{record_id} ({values['date']}, {values['amount']})")
        return record_id

    def get(self, record_id: int) -> CaptureRecord | None:
        """Get a record by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM capture_records WHERE id = ?", (record_id,)
            ).fetchone()
            return CaptureRecord.from_row(row) if row else None

    def list_all(self) -> list[CaptureRecord]:
        """Get all records in insertion order."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM capture_records ORDER BY id ASC").fetchall()
            return [CaptureRecord.from_row(row) for row in rows]

    def list_pending(self) -> list[CaptureRecord]:
        """Get records not yet delivered, in insertion order."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM capture_records WHERE synced = 0 ORDER BY id ASC"
            ).fetchall()
            return [CaptureRecord.from_row(row) for row in rows]

    def count_pending(self) -> int:
        """Number of records not yet delivered."""
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) FROM capture_records WHERE synced = 0").fetchone()
            return row[0]

    def mark_synced(self, record_id: int, photo_ref: str | None = None) -> bool:
        """
        Mark a record as delivered.

        Idempotent: a record already synced keeps its original synced_at,
        and an unknown id is a no-op.

        Returns:
            True if the record transitioned to synced, False otherwise.
        """
        now = utc_now()

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE capture_records
                SET synced = 1, synced_at = ?, photo_ref = COALESCE(?, photo_ref)
                WHERE id = ? AND synced = 0
            """,
                (now, photo_ref, record_id),
            )
            changed = cursor.rowcount > 0

        if changed:
            logger.debug(f"Record #{record_id} marked synced")
        return changed

    # Process-wide state

    def get_state(self, key: str) -> str | None:
        """Get a process-wide state value."""
        with self._transaction() as conn:
            row = conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a process-wide state value."""
        now = utc_now()

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO app_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                    updated_at = excluded.updated_at
            """,
                (key, value, now),
            )

    def get_last_sync_at(self) -> str | None:
        """Timestamp of the last sync run with at least one delivery."""
        return self.get_state(LAST_SYNC_KEY)

    def set_last_sync_at(self, timestamp: str | None = None) -> None:
        """Record a successful sync run."""
        self.set_state(LAST_SYNC_KEY, timestamp or utc_now())

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._transaction() as conn:
            total = conn.execute("SELECT COUNT(*) FROM capture_records").fetchone()[0]
            pending = conn.execute(
                "SELECT COUNT(*) FROM capture_records WHERE synced = 0"
            ).fetchone()[0]

        return {
            "total": total,
            "pending": pending,
            "synced": total - pending,
            "last_sync_at": self.get_last_sync_at(),
        }
