"""loguru setup for the gateway process.

uvicorn and httpx log through the stdlib; their records are forwarded into
loguru so the whole process writes one stream.  Text mode is for a terminal
(stderr, coloured).  JSON mode writes one serialized record per line on
stdout, including any fields bound with ``logger.bind`` (the request log in
``cors.py`` binds method, path, status and duration).
"""

from __future__ import annotations

import logging
import os
import sys

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{name}</cyan> | <level>{message}</level>"
)

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


class _StdlibForwarder(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so the caller's module shows up.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install the single loguru sink.  Call once, before uvicorn starts."""
    level = level.upper()
    logger.remove()
    if fmt == "json":
        logger.add(sys.stdout, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=TEXT_FORMAT, colorize=None)
    logger.configure(extra={"pid": os.getpid()})

    logging.basicConfig(handlers=[_StdlibForwarder()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging ready (level={}, format={})", level, fmt)
