"""Logging setup for the ``content_plane`` logger tree."""

import logging
import os
from typing import IO

PACKAGE_LOGGER = "content_plane"
HANDLER_NAME = "content_plane.stream"
LOG_LEVEL_ENV = "CPLANE_LOG_LEVEL"

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(
    level: str | None = None, stream: IO[str] | None = None
) -> logging.Logger:
    """Send ``content_plane`` records to ``stream`` (stderr by default).

    The level comes from ``level``, then ``CPLANE_LOG_LEVEL``, then INFO.
    Repeated calls adjust the level but never add a second handler. The root
    logger is left to the embedding application.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel((level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper())

    if not any(h.get_name() == HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    return logger
