"""Logging Configuration - Centralized logging setup.

Defaults to INFO level so destination API keys and document bodies
never end up in debug output.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    log_level: Optional[int] = None,
    log_file: str = "docsync.log",
    log_dir: str | Path = "logs",
) -> None:
    """Configure logging for the application.

    Args:
        log_level: Logging level (default: DOCSYNC_LOG_LEVEL or INFO)
        log_file: Log file name
        log_dir: Directory for the log file
    """
    if log_level is None:
        level_name = os.getenv("DOCSYNC_LOG_LEVEL", "INFO").upper()
        log_level = getattr(logging, level_name, logging.INFO)

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / log_file, encoding='utf-8')
        ]
    )

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.info("Logging initialized (%s)", logging.getLevelName(log_level))
