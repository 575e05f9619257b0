import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


def configure_logger(name: str = "stepboard", log_file: Optional[str] = None) -> logging.Logger:
    """Console logging, plus a rotating file when LOG_FILE (or `log_file`) is set."""
    logger = logging.getLogger(name)
    configured_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, configured_level, logging.INFO))
    logger.handlers = []  # Remove any default handlers

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    path = log_file or os.getenv("LOG_FILE", "").strip()
    if path:
        file_handler = RotatingFileHandler(path, maxBytes=2 * 1024 * 1024, backupCount=2)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
