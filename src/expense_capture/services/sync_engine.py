"""Offline queue synchronization service.

Drains pending capture records to the remote spreadsheet, one at a time,
marking each record synced only after the sink confirms the row. Failed
records stay pending and are retried on the next trigger (reconnect,
manual request, startup, or a new capture while online).
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from expense_capture.sink_client import SinkError, SinkNotConfiguredError
from expense_capture.state_store import PersistenceError

if TYPE_CHECKING:
    from expense_capture.sink_client import SheetsSinkClient
    from expense_capture.state_store import CaptureRecord, RecordStore

logger = logging.getLogger(__name__)


class SyncTrigger(str, Enum):
    """Event that requested a sync run."""

    STARTUP = "STARTUP"
    RECONNECT = "RECONNECT"
    MANUAL = "MANUAL"
    APPEND = "APPEND"


class SyncState(str, Enum):
    """Engine state: IDLE -> DRAINING -> (UPLOADING -> SAVING -> MARKING)* -> IDLE."""

    IDLE = "IDLE"
    DRAINING = "DRAINING"
    UPLOADING = "UPLOADING"
    SAVING = "SAVING"
    MARKING = "MARKING"


@dataclass
class SyncResult:
    """Result of one sync run."""

    trigger: SyncTrigger
    success_count: int = 0
    error_count: int = 0
    pending_before: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)
    offline: bool = False
    coalesced: bool = False  # folded into a run already in progress
    passes: int = 0
    attempted_ids: set[int] = field(default_factory=set, repr=False)

    @property
    def success(self) -> bool:
        """Return True if the run completed without errors."""
        return not self.offline and not self.errors

    @property
    def nothing_to_sync(self) -> bool:
        return not self.offline and not self.coalesced and self.pending_before == 0

    @property
    def should_report(self) -> bool:
        """Manual runs always report; automatic runs only when they did work."""
        if self.trigger == SyncTrigger.MANUAL:
            return True
        if self.coalesced:
            return False
        return self.success_count + self.error_count > 0

    @property
    def message(self) -> str:
        """User-facing summary."""
        if self.offline:
            return "No connection: records stay queued"
        if self.coalesced:
            return "Sync already in progress"
        if self.nothing_to_sync:
            return "Nothing to sync"
        message = f"Synced {self.success_count} record(s)"
        if self.error_count:
            message += f", {self.error_count} failed (will retry)"
        return message


def photo_filename(record: CaptureRecord) -> str:
    """File name hint for the asset sink: receipt_<id>_<created epoch ms>.<ext>."""
    try:
        created = datetime.fromisoformat(record.created_at.replace("Z", "+00:00"))
        stamp = int(created.timestamp() * 1000)
    except ValueError:
        stamp = 0

    extension = "jpg"
    match = re.match(r"data:image/([a-z0-9.+-]+);", record.photo or "")
    if match and match.group(1) not in ("jpeg", "pjpeg"):
        extension = match.group(1)

    return f"receipt_{record.id}_{stamp}.{extension}"


class SyncEngine:
    """Delivers pending records to the remote sink.

    Single-flight: while a run is draining, further triggers are coalesced
    into one more pass of the in-flight run instead of running in parallel.
    """

    def __init__(
        self,
        store: RecordStore,
        sink: SheetsSinkClient,
        is_online: Callable[[], bool] | None = None,
        notifier: Callable[[SyncResult], None] | None = None,
    ) -> None:
        """Initialize the sync engine.

        Args:
            store: Record store holding the queue.
            sink: Client for the remote row and asset sinks.
            is_online: Connectivity check; runs are skipped while it returns False.
            notifier: Receives results worth showing to the user.
        """
        self.store = store
        self.sink = sink
        self.is_online = is_online
        self.notifier = notifier
        self.state = SyncState.IDLE
        self.last_result: SyncResult | None = None

        self._lock = threading.Lock()
        self._draining = False
        self._rerun_requested = False

    @property
    def is_draining(self) -> bool:
        with self._lock:
            return self._draining

    def run(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> SyncResult:
        """Run one sync pass over all pending records.

        Args:
            trigger: What requested this run; decides whether an empty or
                offline run is reported to the user.

        Returns:
            SyncResult with per-run counts.
        """
        if self.is_online is not None and not self.is_online():
            logger.info("Sync (%s) skipped: offline", trigger.value)
            result = SyncResult(trigger=trigger, offline=True)
            self._report(result)
            return result

        with self._lock:
            coalesced = self._draining
            if coalesced:
                self._rerun_requested = True
            else:
                self._draining = True

        if coalesced:
            logger.info("Sync in progress; %s trigger coalesced", trigger.value)
            result = SyncResult(trigger=trigger, coalesced=True)
            self._report(result)
            return result

        start_time = time.monotonic()
        result = SyncResult(trigger=trigger)
        finished = False

        try:
            while True:
                self._drain(result)
                with self._lock:
                    if not self._rerun_requested:
                        self._draining = False
                        finished = True
                        break
                    self._rerun_requested = False
                logger.debug("Running coalesced sync pass")
        finally:
            self.state = SyncState.IDLE
            if not finished:
                with self._lock:
                    self._draining = False
                    self._rerun_requested = False

        result.duration_ms = int((time.monotonic() - start_time) * 1000)

        if result.success_count:
            try:
                self.store.set_last_sync_at()
            except PersistenceError as e:
                logger.error(f"Could not record last sync time: {e}")
                result.errors.append(f"Last sync time not saved: {e}")

        if result.pending_before:
            logger.info(
                "Sync completed (%s): %d synced, %d failed of %d pending in %dms",
                trigger.value,
                result.success_count,
                result.error_count,
                result.pending_before,
                result.duration_ms,
            )
        else:
            logger.debug("Sync (%s): nothing to sync", trigger.value)

        self.last_result = result
        self._report(result)
        return result

    def _drain(self, result: SyncResult) -> None:
        """Attempt every pending record not yet attempted in this run."""
        self.state = SyncState.DRAINING
        result.passes += 1

        try:
            pending = self.store.list_pending()
        except PersistenceError as e:
            logger.error(f"Cannot read pending records: {e}")
            result.errors.append(f"Pending records unavailable: {e}")
            return

        for record in pending:
            if record.id in result.attempted_ids:
                continue
            result.attempted_ids.add(record.id)
            result.pending_before += 1

            try:
                self._sync_record(record)
            except SinkNotConfiguredError as e:
                logger.warning(f"Record #{record.id} not sent, sink not configured: {e}")
                self._record_failure(result, record, e)
            except SinkError as e:
                logger.warning(f"Record #{record.id} not sent, stays pending: {e}")
                self._record_failure(result, record, e)
            except PersistenceError as e:
                # Delivered but still pending locally: it will be sent again
                logger.error(f"Record #{record.id} sent but not marked synced: {e}")
                self._record_failure(result, record, e)
            except Exception as e:
                logger.exception(f"Unexpected error syncing record #{record.id}")
                self._record_failure(result, record, e)
            else:
                result.success_count += 1
            finally:
                self.state = SyncState.DRAINING

    def _sync_record(self, record: CaptureRecord) -> None:
        """Upload, save and mark one record. Raises on any failure."""
        if not self.sink.is_configured:
            raise SinkNotConfiguredError("Row sink URL is not configured")

        self.state = SyncState.UPLOADING
        if self.sink.has_asset_sink:
            photo_ref = self.sink.upload_image(record.photo, photo_filename(record))
        else:
            photo_ref = record.photo

        self.state = SyncState.SAVING
        self.sink.add_row(record.to_sink_payload(photo_ref))

        self.state = SyncState.MARKING
        self.store.mark_synced(record.id, photo_ref=photo_ref if photo_ref != record.photo else None)
        logger.debug(f"Record #{record.id} synced")

    @staticmethod
    def _record_failure(result: SyncResult, record: CaptureRecord, error: Exception) -> None:
        result.error_count += 1
        result.errors.append(f"Record {record.id}: {error}")

    def _report(self, result: SyncResult) -> None:
        if not self.notifier or not result.should_report:
            return
        try:
            self.notifier(result)
        except Exception:
            logger.exception("Sync notifier failed")
