#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
The ecs-scheduler logger: INFO and below go to stdout, WARNING and above to stderr.
"""

from __future__ import annotations

import logging as logthings
import sys

LOGGER_NAME = "ecs-scheduler"
LOG_FORMAT = "%(asctime)s [%(levelname)8s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LEVELS = ("FATAL", "CRITICAL", "ERROR", "WARNING", "WARN", "INFO", "DEBUG")


class LevelRangeFilter(logthings.Filter):
    """
    Keeps the records with min_level <= level <= max_level
    """

    def __init__(
        self, min_level: int = logthings.NOTSET, max_level: int = logthings.CRITICAL
    ):
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record) -> bool:
        return self.min_level <= record.levelno <= self.max_level


def stream_handler(stream, min_level: int, max_level: int) -> logthings.Handler:
    handler = logthings.StreamHandler(stream)
    handler.setFormatter(logthings.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler.setLevel(min_level)
    handler.addFilter(LevelRangeFilter(min_level, max_level))
    return handler


def setup_logging() -> logthings.Logger:
    app_logger = logthings.getLogger(LOGGER_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    app_logger.addHandler(stream_handler(sys.stdout, logthings.INFO, logthings.INFO))
    app_logger.addHandler(
        stream_handler(sys.stderr, logthings.WARNING, logthings.CRITICAL)
    )
    app_logger.setLevel(logthings.INFO)
    return app_logger


def set_log_level(level: str) -> None:
    """
    Sets the logger level from its name, i.e. DEBUG. DEBUG records go to stdout along with INFO ones.

    :raises ValueError: if the level name is not valid
    """
    if level.upper() not in LEVELS:
        raise ValueError(f"Log level value {level} is invalid. Must be one of {LEVELS}")
    level_no = logthings.getLevelName(level.upper())
    LOG.setLevel(level_no)
    stdout_handler = LOG.handlers[0]
    stdout_handler.setLevel(min(level_no, logthings.INFO))
    for log_filter in stdout_handler.filters:
        log_filter.min_level = min(level_no, logthings.INFO)


LOG = setup_logging()
