"""Logging setup."""

import sys
from pathlib import Path

from loguru import logger

_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - <level>{message}</level>"


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Send logs to `log_file` if given (the TUI owns the terminal), else stderr."""
    logger.remove()
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level=level, format=_FORMAT, rotation="1 MB", retention=3)
    else:
        logger.add(sys.stderr, level=level, format=_FORMAT)
