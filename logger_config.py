"""Centralized logging configuration for the Appointment Reminder Service.

Every process (API server, background worker) logs to its own rotating file
and to the console using a single formatter.
"""

import logging
from logging.handlers import RotatingFileHandler
import os

from config import settings

# Create logs directory next to the service modules unless an absolute path is configured
LOG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), settings.LOG_DIR)
os.makedirs(LOG_DIR, exist_ok=True)

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(message)s'


def _level() -> int:
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def setup_logger(name: str, log_file: str = 'service.log') -> logging.Logger:
    """Setup logger with rotation.

    Args:
        name: Logger name (usually __name__)
        log_file: Log file name (e.g., 'worker.log', 'api.log')

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    level = _level()
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    # File handler - 10MB max, keep 5 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, log_file),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def configure_root_logger():
    """Reduce third-party library noise."""
    for name in ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'httpcore'):
        logging.getLogger(name).setLevel(logging.WARNING)


# Auto-configure on import
configure_root_logger()
