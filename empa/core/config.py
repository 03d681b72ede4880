"""
Engine configuration parameters for EMPA.

Defines the per-call work bounds and operational settings.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "EMPA_"

QUEUE_LINKED = "linked"
QUEUE_HEAP = "heap"


@dataclass
class EngineConfig:
    """Engine-wide configuration parameters"""

    # Work bounds (bids processed per call)
    max_decrypt_batch: int = 500  # Bids decrypted per decrypt call at most
    max_settle_batch: int = 1000  # Queue entries consumed per settle call at most

    # Priority queue implementation used for new lots
    queue_kind: str = QUEUE_LINKED

    # Operational
    log_level: int = logging.INFO
    log_to_file: bool = False  # Write data_dir/logs/empa.log as well
    data_dir: Path = Path("data")

    def __post_init__(self):
        if self.queue_kind not in (QUEUE_LINKED, QUEUE_HEAP):
            raise ValueError(f"Unknown queue kind: {self.queue_kind}")
        if self.max_decrypt_batch <= 0 or self.max_settle_batch <= 0:
            raise ValueError("Batch bounds must be positive")
        self.data_dir = Path(self.data_dir)


def load_config(env_file: Optional[str] = None) -> EngineConfig:
    """
    Load configuration from the environment.

    Reads EMPA_MAX_DECRYPT_BATCH, EMPA_MAX_SETTLE_BATCH, EMPA_QUEUE_KIND,
    EMPA_LOG_LEVEL, EMPA_LOG_TO_FILE and EMPA_DATA_DIR. Values in `env_file`
    are loaded first without overriding variables already set.

    Args:
        env_file: Optional path to a .env file

    Returns:
        EngineConfig instance
    """
    if env_file:
        load_dotenv(env_file, override=False)

    defaults = EngineConfig()

    def _get(name: str, default):
        return os.environ.get(ENV_PREFIX + name, default)

    level = _get("LOG_LEVEL", defaults.log_level)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper()) if not level.isdigit() else int(level)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {_get('LOG_LEVEL', '')}")

    return EngineConfig(
        max_decrypt_batch=int(_get("MAX_DECRYPT_BATCH", defaults.max_decrypt_batch)),
        max_settle_batch=int(_get("MAX_SETTLE_BATCH", defaults.max_settle_batch)),
        queue_kind=_get("QUEUE_KIND", defaults.queue_kind),
        log_level=level,
        log_to_file=str(_get("LOG_TO_FILE", "")).lower() in ("1", "true", "yes"),
        data_dir=Path(_get("DATA_DIR", defaults.data_dir)),
    )
