"""
Logging Configuration Module

Provides centralized logging setup with configurable output to console and file.
Uses the standard library logging module with custom formatting.

Usage:
    from anywhere.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Session opened")
"""

import logging
import sys
from pathlib import Path
from typing import Optional

# Libraries that log every frame at INFO/DEBUG
NOISY_LOGGERS = ("websockets", "aiohttp", "asyncio")


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name for terminal output.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[1;31m" # Bold Red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def quiet_third_party(level: int = logging.WARNING) -> None:
    """Raise the threshold of chatty library loggers."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Configure the root logger with console and optional file handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        use_colors: Whether to use colored output in console
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)

    if use_colors and sys.stderr.isatty():
        console_format = ColoredFormatter(
            "%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s",
            datefmt="%H:%M:%S"
        )
    else:
        console_format = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler.setFormatter(console_format)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        root_logger.addHandler(file_handler)

    quiet_third_party()


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Usually __name__ of the calling module
    """
    return logging.getLogger(name)


_initialized = False


def init_logging() -> None:
    """
    Initialize logging from settings. Call once at application startup.
    """
    global _initialized
    if _initialized:
        return

    from anywhere.config import settings
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.file
    )

    _initialized = True
