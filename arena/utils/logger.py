import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from arena.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def resolve_log_level() -> int:
    """Console level: LOG_LEVEL if it names a level, else DEBUG/INFO from the debug flag"""
    if Config.LOG_LEVEL:
        level = logging.getLevelName(Config.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if Config.DEBUG else logging.INFO


def log_file_path(now: Optional[datetime] = None) -> Path:
    """Daily log file inside LOG_DIR"""
    now = now or datetime.now()
    return Path(Config.LOG_DIR) / f'arena_{now.strftime("%Y%m%d")}.log'


def setup_logger(name: str) -> logging.Logger:
    """Setup a logger with consistent formatting"""

    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = resolve_log_level()
    logger.setLevel(min(log_level, logging.DEBUG) if Config.LOG_TO_FILE else log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if not Config.LOG_TO_FILE:
        return logger

    # File handler, always at DEBUG
    log_path = log_file_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {log_path}: {e}")
        return logger

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
