"""
Logging configuration
"""

import logging
import sys
from typing import Optional

from core.config import settings

_NOISY_LOGGERS = ("apscheduler", "httpx", "httpcore", "sqlalchemy.engine", "sqlalchemy.pool")


def setup_logging(level: Optional[str] = None):
    """Configure engine logging"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Scheduler ticks, HTTP requests and pool checkouts drown out job logs
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")
