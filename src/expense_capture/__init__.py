"""
Receipt capture → Field extraction → Offline queue → Spreadsheet sync

An offline-first expense reimbursement capture tool: receipts are recognized,
prefilled, confirmed and queued locally, then delivered to a spreadsheet-backed
remote store whenever connectivity permits.
"""

__version__ = "0.1.0"
