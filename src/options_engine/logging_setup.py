"""Loguru sink configuration for processes embedding the engine."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Replace the default loguru sink with the engine's console format.

    Args:
        level: Console log level
        log_file: Optional path for a rotating DEBUG-level file sink
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra} | {message}",
        )

    logger.debug(f"Logging configured (level={level}, file={log_file})")
