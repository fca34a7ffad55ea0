"""
Logging setup.

Every module logs through `logging.getLogger(__name__)`, so everything the
framework writes lands under the `fileroute` logger. setup_logging gives
that logger one handler and the line format

    [2026-01-01 12:00:00] WARNING: Rate limit exceeded {"ip": "1.2.3.4", "path": "login"}

Structured context is passed with `extra={"context": {...}}` and rendered
as compact JSON after the message.
"""

from typing import Optional
import json
import logging
import os


LOGGER_NAME = "fileroute"
LINE_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ContextFormatter(logging.Formatter):
    """Appends record.context as JSON when present."""

    def __init__(self, fmt: str = LINE_FORMAT, datefmt: str = DATE_FORMAT):
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += " " + json.dumps(context, default=str, ensure_ascii=False)
        return line


def setup_logging(level: str = "info", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the `fileroute` logger.

    Safe to call more than once: earlier handlers installed here are
    replaced, not stacked.

    Args:
        level: debug | info | warning | error
        log_file: Append to this file (parent directories created);
                  None logs to stderr
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if handler.get_name() == LOGGER_NAME:
            logger.removeHandler(handler)
            handler.close()

    if log_file:
        directory = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(ContextFormatter())
    handler.set_name(LOGGER_NAME)
    logger.addHandler(handler)
    return logger
