"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Lot snapshots (lot, bids, queue, cursors)
- Engine metadata
"""

from empa.core.storage.sqlite_adapter import SQLiteAdapter
from empa.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
