# backend/device_api/core/logger_config.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "backend.device_api"

FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the package logger: console output always, plus a rotating
    log file (1 MB per file, 5 backups) when log_file is given.
    Safe to call more than once; handlers are replaced, not stacked.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(FORMATTER)
    logger.addHandler(stream_handler)

    if log_file:
        logs_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(logs_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setFormatter(FORMATTER)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
