"""
Logging configuration for threatmap.

The library itself only creates module loggers; the CLI calls setup_logging once.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file to also write logs to
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt='%H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout clean for diagram and CSV output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logging.getLogger(__name__).info(f"Logging to file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Get a module logger, dropping the package prefix for shorter log lines."""
    if name.startswith('threatmap.'):
        name = name[len('threatmap.'):]
    return logging.getLogger(name)
