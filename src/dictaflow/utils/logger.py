import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from platformdirs import user_log_path

ROOT_LOGGER_NAME = "dictaflow"
LOG_FORMAT = "%(asctime)s - %(name)s [%(threadName)s] - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_logger_instance: Optional[logging.Logger] = None


def get_log_dir() -> Path:
    return user_log_path(ROOT_LOGGER_NAME, appauthor=False, ensure_exists=True)


def _build_handlers(level: int, to_console: bool) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            get_log_dir() / "app.log",
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
    ]
    # stdout carries transcripts, keep log lines off it
    if to_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Return a logger under the application root.

    The root is configured on first use with a rotating file in the user log
    directory, plus stderr when console logging is enabled.
    """
    global _logger_instance

    if name == "src." + ROOT_LOGGER_NAME or name.startswith("src." + ROOT_LOGGER_NAME + "."):
        name = name[len("src."):]

    if _logger_instance is None:
        from ..core.settings.config import LOG_TO_CONSOLE, get_log_level

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        if not root_logger.handlers:
            level = get_log_level()
            root_logger.setLevel(level)
            for handler in _build_handlers(level, LOG_TO_CONSOLE):
                root_logger.addHandler(handler)
            root_logger.propagate = False
        _logger_instance = root_logger

    if name == ROOT_LOGGER_NAME:
        return _logger_instance
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Close all handlers so the log file is released."""
    global _logger_instance
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    _logger_instance = None
