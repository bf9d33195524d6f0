"""
Structured logging configuration.
"""

import logging
import sys
from typing import Any

from pythonjsonlogger.json import JsonFormatter


def configure_logging(app_name: str, log_level: str = "INFO") -> logging.Logger:
    """
    Configure structured logging for the application.

    Both the application logger and the ``canteen_shared`` package logger get a
    JSON handler on stdout, so service modules logging through ``get_logger``
    end up in the same stream.

    Args:
        app_name: Name of the application
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    logger = logging.getLogger(app_name)
    for target in (logger, logging.getLogger("canteen_shared")):
        target.setLevel(level)
        if target.handlers:
            continue
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        target.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds contextual information to all log messages.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def order_logger(name: str, order_id: int | None) -> LoggerAdapter:
    """Logger that stamps every record with the order id."""
    return LoggerAdapter(get_logger(name), {"order_id": order_id})
