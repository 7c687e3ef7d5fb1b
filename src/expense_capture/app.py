"""
Application wiring.

Builds the record store, sink client, sync engine, connectivity monitor and
capture pipeline from a Config, and runs the startup sync.
"""

import logging
import threading
from collections.abc import Callable

from .config import Config
from .pipeline import CapturePipeline, TesseractRecognizer, TextRecognizer
from .services import ConnectivityMonitor, SyncEngine, SyncResult, SyncTrigger, interface_probe
from .sink_client import SheetsSinkClient
from .state_store import RecordStore

logger = logging.getLogger(__name__)


class ExpenseCaptureApp:
    """
    One running capture application.

    Raises PersistenceError on construction when the record store cannot be
    opened; every later failure is handled per operation.
    """

    def __init__(
        self,
        config: Config,
        recognizer: TextRecognizer | None = None,
        probe: Callable[[], bool] | None = None,
        notifier: Callable[[SyncResult], None] | None = None,
        background_sync: bool = True,
    ):
        self.config = config
        self.background_sync = background_sync

        self.store = RecordStore(config.state_db_path)
        self.sink = SheetsSinkClient(
            url=config.sink.url,
            asset_url=config.sink.get_asset_url(),
            timeout=config.sink.timeout_seconds,
            max_retries=config.sink.max_retries,
        )

        conn_cfg = config.connectivity
        self.monitor = ConnectivityMonitor(
            on_reconnect=lambda: self.engine.run(SyncTrigger.RECONNECT),
            debounce_seconds=conn_cfg.debounce_seconds,
            poll_interval_seconds=conn_cfg.poll_interval_seconds,
            probe=probe or (lambda: interface_probe(conn_cfg.probe_host, conn_cfg.probe_port)),
        )
        self.engine = SyncEngine(
            self.store,
            self.sink,
            is_online=lambda: self.monitor.is_online,
            notifier=notifier,
        )
        self.pipeline = CapturePipeline(
            self.store,
            recognizer=recognizer or TesseractRecognizer(lang=config.capture.ocr_language),
            request_sync=self.request_sync,
            is_online=lambda: self.monitor.is_online,
            projects=config.capture.projects,
        )

        self._startup_timer: threading.Timer | None = None

        if not config.sink.is_configured():
            logger.warning("No sink URL configured: records will be queued but not sent")

    def request_sync(self, trigger: SyncTrigger) -> None:
        """Run a sync, on a worker thread when background_sync is set."""
        if not self.background_sync:
            self.engine.run(trigger)
            return

        thread = threading.Thread(
            target=self.engine.run,
            args=(trigger,),
            name=f"sync-{trigger.value.lower()}",
            daemon=True,
        )
        thread.start()

    def sync_now(self) -> SyncResult:
        """Manual sync, run in the calling thread."""
        return self.engine.run(SyncTrigger.MANUAL)

    def start(self, poll: bool = True) -> None:
        """Probe connectivity, schedule the startup sync, and start polling."""
        self.monitor.check()

        if self.monitor.is_online:
            delay = self.config.connectivity.startup_delay_seconds
            self._startup_timer = threading.Timer(delay, self.engine.run, args=(SyncTrigger.STARTUP,))
            self._startup_timer.daemon = True
            self._startup_timer.start()
            logger.debug(f"Startup sync scheduled in {delay}s")

        if poll:
            self.monitor.start()

    def stop(self) -> None:
        if self._startup_timer is not None:
            self._startup_timer.cancel()
            self._startup_timer = None
        self.monitor.stop()
        self.sink.close()
        self.store.close()

    def __enter__(self) -> "ExpenseCaptureApp":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
