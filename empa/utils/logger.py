"""
Logging for the auction engine.

Console output goes to stderr so that command output on stdout stays
machine readable. Level and the optional log file come from the engine
configuration; messages about one lot can be tagged with its id through
`get_lot_logger`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT = "empa"
FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE = "empa.log"


class EMPALogger:
    """Owns the handlers of the `empa` logger tree"""

    _console: Optional[logging.Handler] = None
    _file: Optional[logging.Handler] = None

    @classmethod
    def setup(cls, level: int = logging.INFO, log_dir: Optional[Path] = None):
        """
        Configure the `empa` logger tree.

        Safe to call repeatedly: the console handler is created once and
        later calls only change the level. A file handler is added the first
        time a log directory is given.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_dir: Directory for empa.log. None = console only.
        """
        root_logger = logging.getLogger(ROOT)
        root_logger.setLevel(level)

        if cls._console is None:
            cls._console = colorlog.StreamHandler(sys.stderr)
            cls._console.setFormatter(colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
                datefmt=DATE_FORMAT,
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            ))
            root_logger.addHandler(cls._console)

        if log_dir is not None and cls._file is None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            cls._file = logging.FileHandler(log_dir / LOG_FILE)
            cls._file.setFormatter(logging.Formatter(FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(cls._file)

        for handler in root_logger.handlers:
            handler.setLevel(level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'auction', 'decrypt', 'settlement')

        Returns:
            Logger instance
        """
        if cls._console is None:
            cls.setup()

        return logging.getLogger(f"{ROOT}.{name}")


class LotLogger(logging.LoggerAdapter):
    """Prefixes every message with the lot it concerns."""

    def process(self, msg, kwargs):
        return f"[lot {self.extra['lot_id']}] {msg}", kwargs


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return EMPALogger.get_logger(name)


def get_lot_logger(name: str, lot_id: int) -> LotLogger:
    """Get a subsystem logger bound to one lot"""
    return LotLogger(get_logger(name), {"lot_id": lot_id})


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None):
    """Setup logging configuration"""
    EMPALogger.setup(level=level, log_dir=log_dir)


def configure_logging(config, debug: bool = False):
    """
    Apply an EngineConfig's logging settings.

    Args:
        config: EngineConfig providing log_level, log_to_file and data_dir
        debug: Force DEBUG regardless of the configured level
    """
    level = logging.DEBUG if debug else config.log_level
    log_dir = config.data_dir / "logs" if config.log_to_file else None
    setup_logging(level=level, log_dir=log_dir)
