"""
Logging Configuration
=====================
One configured "stacks" logger; every module logs through a child of it
with ``logging.getLogger(__name__)``.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

NOISY_LOGGERS = ('joblib', 'matplotlib', 'urllib3', 'plotly', 'kaleido')

# Configured loggers by name
_loggers = {}


def _rotating_handler(log_file: str, max_size_mb: int, backup_count: int) -> RotatingFileHandler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        log_path,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count
    )


def setup_logger(
    name: str = "stacks",
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 3,
    console: bool = True,
    config=None,
) -> logging.Logger:
    """
    Set up a logger with file and console handlers.

    The first call for a name wins; later calls return the cached logger.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Rotating log file (optional)
        max_size_mb: Max log file size before rotation
        backup_count: Number of rotated files to keep
        console: Whether to log to stdout
        config: LoggingConfig section; its values replace the keyword
            arguments above

    Returns:
        Configured logger
    """
    if name in _loggers:
        return _loggers[name]

    if config is not None:
        level = config.level
        log_file = config.file
        max_size_mb = config.max_size_mb
        backup_count = config.backup_count
        console = config.console

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setLevel(logging.INFO)
        handlers.append(stream)

    if log_file:
        rotating = _rotating_handler(log_file, max_size_mb, backup_count)
        rotating.setLevel(logging.DEBUG)
        handlers.append(rotating)

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    _loggers[name] = logger
    return logger


def reset_logger(name: str = "stacks"):
    """Undo setup_logger: close handlers and hand records back to the root logger."""
    logger = logging.getLogger(name)
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _loggers.pop(name, None)


def get_logger(name: str = "stacks") -> logging.Logger:
    """Configured logger if setup_logger ran for ``name``, else the plain one."""
    return _loggers.get(name) or logging.getLogger(name)


def silence_external_loggers():
    """Raise third-party loggers to WARNING."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
