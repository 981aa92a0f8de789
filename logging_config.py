import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_ROOT_LOGGER = "ephemeral"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the service logger. Safe to call more than once."""
    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(log_level.upper())
    logger.propagate = False

    # Remove existing handlers
    logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


def short_token(token: Optional[str]) -> str:
    """Loggable prefix of a membership token."""
    if not token:
        return "<none>"
    return f"{token[:6]}..."
