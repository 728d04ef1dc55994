import logging
import sys
from logging.handlers import RotatingFileHandler

from backend.config import LOG_FILE, LOG_LEVEL


def setup_logging() -> None:
    """Configure application logging"""
    logger = logging.getLogger()
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if LOG_FILE:
        try:
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=10485760,  # 10MB
                backupCount=5,
            )
        except OSError:
            logger.warning("Cannot open log file %s; logging to stdout only", LOG_FILE)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # Silence noisy libraries
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
