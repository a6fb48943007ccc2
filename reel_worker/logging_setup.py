import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s'

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "openai", "botocore", "boto3", "urllib3", "s3transfer", "psycopg.pool")


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None,
                  log_file_name: str = "reel_worker.log") -> logging.Logger:
    """Send the worker logger to a rotating file under log_dir and to the console"""
    log_dir = Path(log_dir or os.path.join(os.getenv("DATA_DIR", "/app/data"), "worker"))
    log_dir.mkdir(parents=True, exist_ok=True)

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger("reel_worker")
    logger.setLevel(level)
    logger.propagate = False

    # initialize() may run more than once per process
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    log_file = log_dir / log_file_name
    file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info(f"Logging initialized at {logging.getLevelName(level)}. Log file: {log_file}")
    return logger


def log_exception(logger: logging.Logger, message: str) -> None:
    """Log an error message together with the active traceback"""
    logger.error(message, exc_info=True)
