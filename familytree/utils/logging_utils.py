"""Logging helpers."""
from __future__ import annotations

import logging


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO, *, force: bool = False) -> None:
    """Configure root logger with a simple format."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, force=force)


__all__ = ["LOG_FORMAT", "setup_logging"]
