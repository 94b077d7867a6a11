"""
Logging helpers for the dflow management tooling.

Entry points call `setup_logging()` once with the resolved log level; every other
module obtains its logger with `get_logger(__name__)`.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger to write to stderr.

    Args:
        level (str): Logging level name, e.g. "INFO" or "DEBUG".
    """
    logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger().setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
