"""Logging configuration for the gateway."""

import logging
import sys

LOGGER_NAME = "llm-gateway"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level_number(level: str) -> int:
    number = logging.getLevelName(str(level).upper())
    return number if isinstance(number, int) else logging.INFO


def setup_logging(level: str = "INFO") -> logging.Logger:
    """(Re)configure the ``llm-gateway`` logger to write to stdout at ``level``.

    Calling it again replaces the handler instead of adding a second one.
    """
    gateway_logger = logging.getLogger(LOGGER_NAME)
    numeric_level = _level_number(level)
    gateway_logger.setLevel(numeric_level)
    gateway_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    gateway_logger.addHandler(handler)

    # Still reaches root handlers (pytest's caplog among them)
    gateway_logger.propagate = True
    return gateway_logger


logger = logging.getLogger(LOGGER_NAME)
