"""Seams between the persistence layer and the host application's chart/editor."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], None]

_STATUS_LEVELS = {
    "success": logging.INFO,
    "saved": logging.INFO,
    "saving": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ChartView(Protocol):
    """The rendered chart; owns layout and drawing."""

    def set_data(self, data: list[Any]) -> None:
        """Replace the people shown in the chart."""

    def update_tree(self, initial: bool = False) -> None:
        """Re-render after set_data."""


class TreeEditor(Protocol):
    """The editing component attached to a chart."""

    def export_data(self) -> list[Any]:
        """Current people as plain JSON-compatible data."""

    def set_on_change(self, callback: Optional[Callable[[], None]]) -> None:
        """Register (or clear, with None) the edit-change callback."""


def log_status(message: str, kind: str = "info") -> None:
    """Default status sink: the log instead of a banner."""
    logger.log(_STATUS_LEVELS.get(kind, logging.INFO), "[%s] %s", kind, message)


__all__ = ["ChartView", "TreeEditor", "StatusCallback", "log_status"]
