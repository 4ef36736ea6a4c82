"""Console and daily-rotating file logging."""

from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from config import default_config_dir

LOG_FILENAME = "voice_dictation.log"
LOG_BACKUP_DAYS = 7

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_log_dir() -> Path:
    return default_config_dir() / "logs"


def setup_logging(level: str = "info", log_dir: Optional[Path] = None) -> logging.Logger:
    """Attach a stdout handler and a midnight-rotating file handler to root.

    Calling it twice does not duplicate handlers. The file always gets
    DEBUG; the console follows ``level``.
    """
    console_level = LEVELS.get(str(level).lower(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    has_console_handler = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
        for h in root_logger.handlers
    )
    if not has_console_handler:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    has_file_handler = any(isinstance(h, TimedRotatingFileHandler) for h in root_logger.handlers)
    if not has_file_handler:
        directory = log_dir or get_log_dir()
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                directory / LOG_FILENAME,
                when="midnight",
                backupCount=LOG_BACKUP_DAYS,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
                )
            )
            root_logger.addHandler(file_handler)
        except OSError as exc:
            root_logger.warning("Could not set up file logging in %s: %s", directory, exc)

    # Third-party HTTP chatter stays out of the console.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger("voice_dictation")
