"""Logging configuration for the chat service."""

import logging
import logging.config
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure the root logger with a console handler.

    Args:
        log_level: Log level name. Defaults to the LOG_LEVEL env var or INFO.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": log_level.upper(),
                "handlers": ["console"],
            },
        }
    )

    # SQLAlchemy echo output is controlled by SQL_DEBUG, keep the rest quiet
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
