import json
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional

from empa.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent lot storage.

    One JSON document per lot holding the lot fields, the bid table, the
    live-bid index, the queue and the cursors.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS lots (
                    lot_id INTEGER PRIMARY KEY,
                    status INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_lot_status ON lots(status);")

    # =========================================================================
    # Lots
    # =========================================================================

    def save_lot(self, lot_id: int, status: int, data: dict):
        """Insert or replace a lot snapshot."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO lots (lot_id, status, data) VALUES (?, ?, ?)",
                (lot_id, status, json.dumps(data))
            )

    def get_lot(self, lot_id: int) -> Optional[dict]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM lots WHERE lot_id = ?", (lot_id,))
        row = cursor.fetchone()
        return json.loads(row["data"]) if row else None

    def get_lot_ids(self, status: Optional[int] = None) -> List[int]:
        conn = self._get_conn()
        if status is None:
            cursor = conn.execute("SELECT lot_id FROM lots ORDER BY lot_id ASC")
        else:
            cursor = conn.execute("SELECT lot_id FROM lots WHERE status = ? ORDER BY lot_id ASC", (status,))
        return [row["lot_id"] for row in cursor.fetchall()]

    def close(self):
        """Close the connection of the current thread."""
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn
