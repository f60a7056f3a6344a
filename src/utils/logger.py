"""
Logging utilities for the command-line explorer.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers created so far, keyed by name
_loggers: dict[str, logging.Logger] = {}
_default_level: int = logging.WARNING


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """Get or create a logger with the given name.

    Explorer output goes to stdout, so log records are written to stderr.

    Args:
        name: Logger name, typically __name__
        level: Logging level, defaults to the level set by set_log_level

    Returns:
        Configured logger
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else _default_level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """Change the level of every explorer logger, including ones created later."""
    global _default_level

    _default_level = level
    for logger in _loggers.values():
        logger.setLevel(level)


def setup_file_logging(filename: str = "explorer.log", level: int = logging.INFO) -> None:
    """Set up file logging for all loggers.

    Args:
        filename: Log file path
        level: Logging level for file handler
    """
    root_logger = logging.getLogger()

    file_handler = logging.FileHandler(filename)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger.addHandler(file_handler)
