"""
Logging setup for the API process.
"""
import logging
import sys

from backoffice.core.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Configure application-wide logging.

    Called once at startup. Components only emit events through their
    module loggers; verbosity is decided here.
    """
    settings = get_settings()
    level_name = (level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("backoffice")
