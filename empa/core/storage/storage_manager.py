from pathlib import Path
from typing import List, Optional

from empa.core.storage.sqlite_adapter import SQLiteAdapter
from empa.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the auction engine.

    One snapshot per lot: lot fields, bids, live-bid index, queue and the
    decrypt/settle cursors. Lots share no state, so each is saved on its own.
    """

    def __init__(self, data_dir: Path, db_name: str = "auctions.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Lots
    # =========================================================================

    def save_lot(self, lot_id: int, data: dict):
        """Save a lot snapshot (as produced by LotState.to_dict)."""
        status = data["auction"]["status"]
        self.adapter.save_lot(lot_id, status, data)

    def load_lot(self, lot_id: int) -> Optional[dict]:
        return self.adapter.get_lot(lot_id)

    def load_lot_ids(self, status: Optional[int] = None) -> List[int]:
        """All stored lot ids, optionally filtered by lot status."""
        return self.adapter.get_lot_ids(status)

    def close(self):
        self.adapter.close()
