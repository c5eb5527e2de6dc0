"""Logging setup for docshape."""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from docshape.config import get_config


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    rotation: str = "10 MB",
) -> None:
    """Configure loguru sinks for an application using docshape.

    Args:
        level: Minimum level for every sink, defaults to DOCSHAPE_LOG_LEVEL
        log_file: Optional file to log to in addition to stderr
        rotation: Rotation policy for the file sink
    """
    level = level or get_config().log_level

    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, rotation=rotation)

    logger.debug(f"Logging configured at {level}")
