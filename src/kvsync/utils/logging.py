"""Logging helpers with consistent formatting."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from kvsync.utils.env import get_bool_env


def get_logger(name: str, level: Optional[int] = None, *, rich: Optional[bool] = None) -> logging.Logger:
    """Configure and return a logger under the ``kvsync`` namespace."""
    logger = logging.getLogger(name if name.startswith("kvsync") else f"kvsync.{name}")
    if logger.handlers:
        return logger

    if level is None:
        level = logging.DEBUG if get_bool_env("KVSYNC_DEBUG") else logging.INFO
    if rich is None:
        rich = not get_bool_env("KVSYNC_PLAIN_LOGS")

    logger.setLevel(level)

    if rich:
        handler: logging.Handler = RichHandler(
            level=level,
            console=Console(stderr=True),
            markup=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            show_time=True,
            show_path=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s %(name)s %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.propagate = False
    return logger
