# services/logger_config.py
import logging
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

from config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s %(filename)s:%(lineno)d] - %(message)s'

# Libraries that log every HTTP call or batch at INFO
NOISY_LOGGERS = ("urllib3", "sentence_transformers", "faiss", "multipart")


def _file_handler(path: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    """Rotating handler (5MB x 5), or None when the log directory is not writable."""
    try:
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=5)
    except OSError as e:
        print(f"Error setting up file logger: {e}")
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(level: Optional[str] = None):
    """
    Configure the worker logger: everything to the rotating file,
    INFO and above to the console. Safe to call more than once.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)
    if logger.hasHandlers():
        logger.handlers.clear()
    logger.setLevel(level or settings.LOG_LEVEL)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = _file_handler(settings.LOG_FILE_PATH, formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging configured successfully.")
