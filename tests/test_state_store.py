"""Tests for record store."""

import sqlite3
from datetime import date
from types import SimpleNamespace

import pytest

from expense_capture.pipeline import CaptureDraft
from expense_capture.state_store import CaptureRecord, PersistenceError, RecordStore


class TestRecordStore:
    """Tests for SQLite record store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        RecordStore(temp_db).close()
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

        assert "capture_records" in tables
        assert "app_state" in tables
        assert "schema_version" not in tables

    def test_init_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "capture.db"
        RecordStore(db_path).close()
        assert db_path.exists()

    def test_unopenable_path_raises_persistence_error(self, tmp_path):
        """A path that cannot hold a database is reported as PersistenceError."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file")

        with pytest.raises(PersistenceError):
            RecordStore(blocker / "capture.db")


class TestRecordOperations:
    """Tests for append, list and mark operations."""

    def test_append_returns_increasing_ids(self, store, record_fields):
        first = store.append(record_fields)
        second = store.append(record_fields)

        assert first > 0
        assert second > first

    def test_append_stores_fields_as_pending(self, store, record_fields):
        record_id = store.append(record_fields)
        record = store.get(record_id)

        assert isinstance(record, CaptureRecord)
        assert record.date == "2025-11-05"
        assert record.document_number == "4F2A1B3C-9D8E-4A7B-B6C5-1234567890AB"
        assert record.amount == "30.00"
        assert record.requester == "Ana Lopez"
        assert record.synced is False
        assert record.synced_at is None
        assert record.photo_ref is None
        assert record.created_at.endswith("Z")

    def test_append_defaults_date_to_today(self, store, record_fields):
        record_fields["date"] = ""
        record_id = store.append(record_fields)

        assert store.get(record_id).date == date.today().isoformat()

    def test_append_ignores_store_owned_fields(self, store, record_fields):
        record_fields.update({"id": 999, "synced": True, "created_at": "1999-01-01"})
        record_id = store.append(record_fields)
        record = store.get(record_id)

        assert record.id != 999
        assert record.synced is False
        assert record.created_at != "1999-01-01"

    def test_append_accepts_capture_draft(self, store, record_fields):
        draft = CaptureDraft(**{**record_fields, "project": "otro"}, other_project="Feria")

        record = store.get(store.append(draft))

        assert record.project == "Feria"
        assert record.amount == "30.00"
        assert record.photo == record_fields["photo"]

    def test_append_accepts_attribute_object(self, store, record_fields):
        record = store.get(store.append(SimpleNamespace(**record_fields)))

        assert record.description == record_fields["description"]
        assert record.document_number == record_fields["document_number"]

    def test_get_unknown_returns_none(self, store):
        assert store.get(12345) is None

    def test_list_pending_in_insertion_order(self, store, record_fields):
        ids = [store.append({**record_fields, "description": f"item {i}"}) for i in range(3)]

        pending = store.list_pending()

        assert [r.id for r in pending] == ids
        assert [r.description for r in pending] == ["item 0", "item 1", "item 2"]

    def test_mark_synced_removes_from_pending(self, store, record_fields):
        first = store.append(record_fields)
        second = store.append(record_fields)

        assert store.mark_synced(first) is True

        assert [r.id for r in store.list_pending()] == [second]
        assert store.count_pending() == 1
        assert len(store.list_all()) == 2

    def test_mark_synced_is_idempotent(self, store, record_fields):
        record_id = store.append(record_fields)

        assert store.mark_synced(record_id) is True
        synced_at = store.get(record_id).synced_at

        assert store.mark_synced(record_id) is False
        record = store.get(record_id)
        assert record.synced is True
        assert record.synced_at == synced_at

    def test_mark_synced_unknown_id_is_noop(self, store, record_fields):
        store.append(record_fields)

        assert store.mark_synced(9999) is False
        assert store.count_pending() == 1

    def test_mark_synced_stores_photo_ref(self, store, record_fields):
        record_id = store.append(record_fields)

        store.mark_synced(record_id, photo_ref="https://drive.example/receipt_1.jpg")

        record = store.get(record_id)
        assert record.photo_ref == "https://drive.example/receipt_1.jpg"
        assert record.effective_photo == "https://drive.example/receipt_1.jpg"
        assert record.photo == record_fields["photo"]

    def test_sink_payload_field_names(self, store, record_fields):
        record = store.get(store.append(record_fields))

        payload = record.to_sink_payload("ref")

        assert payload == {
            "date": "2025-11-05",
            "description": "Cuadernos para capacitacion",
            "documentNumber": "4F2A1B3C-9D8E-4A7B-B6C5-1234567890AB",
            "project": "Operaciones",
            "amount": "30.00",
            "requester": "Ana Lopez",
            "photoRef": "ref",
        }

    def test_records_survive_reopen(self, temp_db, record_fields):
        store = RecordStore(temp_db)
        record_id = store.append(record_fields)
        store.close()

        reopened = RecordStore(temp_db)
        try:
            assert [r.id for r in reopened.list_pending()] == [record_id]
        finally:
            reopened.close()


class TestAppState:
    """Tests for process-wide state."""

    def test_last_sync_initially_none(self, store):
        assert store.get_last_sync_at() is None

    def test_set_last_sync_at(self, store):
        store.set_last_sync_at("2025-11-05T10:00:00Z")
        assert store.get_last_sync_at() == "2025-11-05T10:00:00Z"

        store.set_last_sync_at("2025-11-06T10:00:00Z")
        assert store.get_last_sync_at() == "2025-11-06T10:00:00Z"

    def test_set_last_sync_defaults_to_now(self, store):
        store.set_last_sync_at()
        assert store.get_last_sync_at().endswith("Z")

    def test_get_stats(self, store, record_fields):
        first = store.append(record_fields)
        store.append(record_fields)
        store.mark_synced(first)
        store.set_last_sync_at("2025-11-05T10:00:00Z")

        stats = store.get_stats()

        assert stats == {
            "total": 2,
            "pending": 1,
            "synced": 1,
            "last_sync_at": "2025-11-05T10:00:00Z",
        }


class TestHandleRecovery:
    """The store reopens its connection when it goes stale."""

    def test_recovers_after_close(self, store, record_fields):
        store.append(record_fields)
        store.close()

        assert store.count_pending() == 1

    def test_recovers_after_connection_closed_underneath(self, store, record_fields):
        store.append(record_fields)
        store._get_connection().close()

        record_id = store.append(record_fields)

        assert record_id > 0
        assert store.count_pending() == 2

    def test_recovers_after_table_dropped(self, store, temp_db, record_fields):
        store.append(record_fields)

        other = sqlite3.connect(str(temp_db))
        other.execute("DROP TABLE capture_records")
        other.commit()
        other.close()

        record_id = store.append(record_fields)

        assert store.get(record_id) is not None
        assert store.count_pending() == 1
        assert store.mark_synced(record_id, photo_ref="ref") is True

    def test_recovers_after_app_state_dropped(self, store, temp_db):
        other = sqlite3.connect(str(temp_db))
        other.execute("DROP TABLE app_state")
        other.commit()
        other.close()

        store.set_last_sync_at("2025-11-05T10:00:00Z")
        assert store.get_last_sync_at() == "2025-11-05T10:00:00Z"

    def test_recovers_after_file_deleted(self, store, temp_db, record_fields):
        store.append(record_fields)
        temp_db.unlink()

        assert store.count_pending() == 0
        store.append(record_fields)
        assert temp_db.exists()
        assert store.count_pending() == 1

