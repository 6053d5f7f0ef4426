from __future__ import annotations

import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Stop the timer if it has not fired yet."""


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay seconds."""


class ThreadingScheduler:
    """threading.Timer based scheduler; callbacks run on the timer thread."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


__all__ = ["TimerHandle", "Scheduler", "ThreadingScheduler"]
