"""Logging setup for the raffle coordinator.

Modules call ``get_logger(__name__)``. The handler lives on the ``raffle``
package logger, so web3 and uvicorn keep their own configuration and only
the coordinator's records are formatted here. Until ``configure_logging`` is
called with values from the ``logging`` config section, the level comes from
``LOG_LEVEL`` and records go to the console.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "raffle"
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

_handler: Optional[logging.Handler] = None


def _open_handler(log_file: Optional[str]) -> logging.Handler:
    if not log_file:
        return logging.StreamHandler()
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """(Re)install the coordinator's handler and level.

    Safe to call more than once: the previous handler is closed and replaced,
    which is how ``main`` applies the configured level after modules have
    already logged at import time.
    """
    global _handler

    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    package = logging.getLogger(PACKAGE_LOGGER)

    if _handler is not None:
        package.removeHandler(_handler)
        _handler.close()

    failed_path = None
    try:
        _handler = _open_handler(log_file)
    except OSError:
        failed_path = log_file
        _handler = logging.StreamHandler()

    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package.addHandler(_handler)
    package.setLevel(getattr(logging, level_name, logging.INFO))

    if failed_path:
        package.warning("Cannot open log file %s, logging to console", failed_path)
    return package


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if _handler is None:
        configure_logging()
    return logging.getLogger(name)
