"""
CLI runner module.

Provides commands:
- capture: Queue a receipt photo with its form fields
- extract: Show fields recognized on a receipt
- sync: Send pending records now
- pending / status: Inspect the local queue
- watch: Sync on startup and whenever connectivity returns
- init-config: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
