"""
Logging setup for the ticker feed runner.
Console output plus optional daily-rotated file.
"""

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging; basicConfig is a no-op if handlers already exist."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    if log_file:
        setup_log_rotation(log_file, logging.Formatter(LOG_FORMAT))

def setup_log_rotation(log_file: str, formatter: Optional[logging.Formatter] = None) -> None:
    """Add a daily rotating file handler (keeps 7 days) to the root logger."""
    try:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        handler.setFormatter(formatter or logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

        logger.info(f"Log rotation configured for {log_file} (daily, keep 7 days)")

    except OSError as e:
        logger.error(f"Failed to setup log rotation: {e}")
