"""
Background services: queue synchronization and connectivity monitoring.
"""

from .connectivity import ConnectivityMonitor, ConnectivityState, interface_probe
from .sync_engine import SyncEngine, SyncResult, SyncState, SyncTrigger, photo_filename

__all__ = [
    "ConnectivityMonitor",
    "ConnectivityState",
    "interface_probe",
    "SyncEngine",
    "SyncResult",
    "SyncState",
    "SyncTrigger",
    "photo_filename",
]
