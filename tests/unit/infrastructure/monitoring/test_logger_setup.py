import logging
from logging.handlers import RotatingFileHandler

import pytest
from rich.logging import RichHandler

from pollnotify.infrastructure.monitoring.logger_setup import parse_log_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    saved_httpx = logging.getLogger("httpx").level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
    logging.getLogger("httpx").setLevel(saved_httpx)


@pytest.mark.parametrize("name, expected", [
    ("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("verbose", logging.INFO),
])
def test_parse_log_level(name, expected):
    assert parse_log_level(name) == expected


def test_setup_logging_installs_console_and_file_handlers(restore_root_logger, tmp_path):
    log_file = tmp_path / "dispatcher.log"

    setup_logging(log_level=logging.DEBUG, log_file=str(log_file))
    logging.getLogger("pollnotify.test").info("hello file")

    handlers = restore_root_logger.handlers
    assert restore_root_logger.level == logging.DEBUG
    assert any(isinstance(h, RichHandler) for h in handlers)
    file_handlers = [h for h in handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    file_handlers[0].flush()
    assert "pollnotify.test - INFO - hello file" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_replaces_previous_handlers(restore_root_logger):
    setup_logging()
    setup_logging()

    assert len(restore_root_logger.handlers) == 1
