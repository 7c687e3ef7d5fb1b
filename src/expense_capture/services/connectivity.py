"""
Connectivity monitor.

Tracks online/offline state and schedules one debounced sync run when the
host comes back online. State is driven either by explicit set_online()
calls or by a background thread polling a probe.
"""

import logging
import socket
import threading
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


def interface_probe(host: str = "8.8.8.8", port: int = 53, timeout: float = 1.0) -> bool:
    """Check for a usable network route.

    Connecting a UDP socket only selects a route; no packet is sent. It fails
    when the host has no non-loopback interface able to reach the address.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.settimeout(timeout)
        sock.connect((host, port))
        return not sock.getsockname()[0].startswith("127.")
    except OSError:
        return False
    finally:
        sock.close()


class ConnectivityMonitor:
    """
    Online/offline state machine with a debounced reconnect callback.

    - Offline -> Online arms a timer; when it expires and the host is still
      online, on_reconnect() runs once
    - Every further transition inside the window re-arms the timer
    - Online -> Offline cancels a pending timer
    """

    def __init__(
        self,
        on_reconnect: Callable[[], object] | None = None,
        debounce_seconds: float = 3.0,
        poll_interval_seconds: float = 10.0,
        probe: Callable[[], bool] | None = None,
        initial_online: bool = True,
    ):
        self.on_reconnect = on_reconnect
        self.debounce_seconds = debounce_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.probe = probe or interface_probe

        self._online = initial_online
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        # Bumped on every arm; a timer callback only fires for the current one
        self._timer_generation = 0
        self._listeners: list[Callable[[ConnectivityState], None]] = []

        self._shutdown = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    @property
    def state(self) -> ConnectivityState:
        return ConnectivityState.ONLINE if self.is_online else ConnectivityState.OFFLINE

    @property
    def reconnect_pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def add_listener(self, callback: Callable[[ConnectivityState], None]) -> None:
        """Register a callback receiving every state transition."""
        self._listeners.append(callback)

    def set_online(self, online: bool) -> None:
        """Record a connectivity event."""
        fire_now = False

        with self._lock:
            was_online = self._online
            self._online = online
            if was_online == online:
                return

            self._cancel_timer()
            if online and self.on_reconnect is not None:
                if self.debounce_seconds > 0:
                    self._timer_generation += 1
                    self._timer = threading.Timer(
                        self.debounce_seconds,
                        self._debounce_expired,
                        args=(self._timer_generation,),
                    )
                    self._timer.daemon = True
                    self._timer.start()
                else:
                    fire_now = True

        state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        logger.info(f"Connectivity changed: {state.value}")
        self._notify(state)

        if fire_now:
            self._fire_reconnect()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _debounce_expired(self, generation: int) -> None:
        with self._lock:
            if self._timer is None or generation != self._timer_generation:
                logger.debug("Superseded reconnect timer expired; ignoring")
                return
            self._timer = None
            still_online = self._online

        if still_online:
            self._fire_reconnect()
        else:
            logger.debug("Debounce expired while offline; no sync")

    def _fire_reconnect(self) -> None:
        try:
            self.on_reconnect()
        except Exception as e:
            logger.error(f"Reconnect sync failed: {e}", exc_info=True)

    def _notify(self, state: ConnectivityState) -> None:
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)

    def check(self) -> bool:
        """Run the probe once and record the outcome."""
        try:
            online = bool(self.probe())
        except Exception as e:
            logger.warning(f"Connectivity probe failed: {e}")
            online = False
        self.set_online(online)
        return online

    def start(self) -> None:
        """Start the background polling thread."""
        if self._thread and self._thread.is_alive():
            return

        self._shutdown.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="connectivity-monitor",
            daemon=True,
        )
        self._thread.start()
        logger.info("Started connectivity monitor thread")

    def _poll_loop(self) -> None:
        while not self._shutdown.is_set():
            self.check()
            self._shutdown.wait(self.poll_interval_seconds)
        logger.info("Connectivity monitor stopped")

    def stop(self) -> None:
        """Stop polling and cancel any pending reconnect run."""
        self._shutdown.set()
        with self._lock:
            self._cancel_timer()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
