"""Logging helpers for tools and local runs. The library itself installs no handlers."""

from __future__ import annotations

import logging
import sys


def setup_logger(name: str = "fruitmerge", level: int = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to ``name`` (once) and set its level."""
    logger = logging.getLogger(name)
    if logger.handlers:
        logger.setLevel(level)
        return logger

    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s", "%H:%M:%S")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
