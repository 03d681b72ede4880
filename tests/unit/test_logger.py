"""
Unit tests for engine logging.
"""

import logging

import pytest

from empa.core.config import EngineConfig
from empa.utils.logger import EMPALogger, configure_logging, get_logger, get_lot_logger


@pytest.fixture
def restore_logging():
    root = logging.getLogger("empa")
    level = root.level
    yield
    if EMPALogger._file is not None:
        root.removeHandler(EMPALogger._file)
        EMPALogger._file.close()
        EMPALogger._file = None
    EMPALogger.setup(level=level)


class TestLogger:
    """Tests for subsystem and lot loggers."""

    def test_subsystem_logger_name(self):
        assert get_logger("settlement").name == "empa.settlement"

    def test_lot_logger_prefix(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="empa"):
            get_lot_logger("decrypt", 7).info("Prepared 3 bids")

        assert caplog.messages == ["[lot 7] Prepared 3 bids"]
        assert caplog.records[0].name == "empa.decrypt"

    def test_configure_level(self, restore_logging):
        configure_logging(EngineConfig(log_level=logging.WARNING))
        assert logging.getLogger("empa").level == logging.WARNING

        configure_logging(EngineConfig(log_level=logging.WARNING), debug=True)
        assert logging.getLogger("empa").level == logging.DEBUG

    def test_log_file_under_data_dir(self, tmp_path, restore_logging):
        configure_logging(EngineConfig(log_level=logging.INFO, log_to_file=True, data_dir=tmp_path))

        get_lot_logger("auction", 2).info("settled")
        EMPALogger._file.flush()

        assert "[lot 2] settled" in (tmp_path / "logs" / "empa.log").read_text()
