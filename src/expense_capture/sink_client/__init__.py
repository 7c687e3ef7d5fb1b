"""
Spreadsheet sink API client.

Provides:
- Append rows to the remote spreadsheet (action=addRow)
- Upload receipt images (action=uploadImage)

Treats anything but an explicit success response as a failure.
"""

from .client import (
    SheetsSinkClient,
    SinkAPIError,
    SinkConnectionError,
    SinkError,
    SinkNotConfiguredError,
)

__all__ = [
    "SheetsSinkClient",
    "SinkError",
    "SinkAPIError",
    "SinkConnectionError",
    "SinkNotConfiguredError",
]
