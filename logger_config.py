"""Logging setup shared by every Goal Reminder Service component.

Each component writes its own rotating file under LOG_DIR and echoes to
the console. Level and file output are controlled from settings.
"""

import logging
from logging.handlers import RotatingFileHandler
import os

from config import settings

_FORMAT = '[%(asctime)s] %(levelname)s %(name)s - %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'mcp')


def _log_dir() -> str:
    path = settings.LOG_DIR
    if not os.path.isabs(path):
        path = os.path.join(os.path.dirname(os.path.abspath(__file__)), path)
    os.makedirs(path, exist_ok=True)
    return path


def _level() -> int:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str, log_file: str = 'service.log') -> logging.Logger:
    """Return the logger for a component, configuring it on first use.

    Args:
        name: Logger name (usually __name__)
        log_file: File under LOG_DIR (e.g. 'store.log', 'api.log')
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _level()
    logger.setLevel(level)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    if settings.LOG_TO_FILE:
        # 10MB per file, 5 backups
        file_handler = RotatingFileHandler(
            os.path.join(_log_dir(), log_file),
            maxBytes=10 * 1024 * 1024,
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
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_root_logger()
