"""Logging setup for the pollnotify processes.

Console records go to stderr through rich, so command output on stdout
stays clean. A rotating file log can be added for the long-running
dispatcher.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def parse_log_level(name: str, default: int = DEFAULT_LOG_LEVEL) -> int:
    """Maps a level name such as ``"debug"`` to its logging constant."""
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
) -> None:
    """Replaces the root logger handlers.

    Args:
        log_level: Minimum level for every handler.
        log_format: Format of the file log. The console shows time and level itself.
        log_file: Optional path of a rotating log file.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
            )
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.debug(f"Logging configured. Level={logging.getLevelName(log_level)}")
