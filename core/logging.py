"""
Logging configuration
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
PIPELINE_LOGGER = "card_sync"


def setup_logging(log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure application logging once per process.

    Output goes to stdout and, when a log file is configured, to that file
    as well. Returns the pipeline logger that entry points hand to each stage.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    log_path = log_file or settings.LOG_FILE
    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True
    )

    # Set SQLAlchemy logging to WARNING to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger(PIPELINE_LOGGER)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")
    return logger
