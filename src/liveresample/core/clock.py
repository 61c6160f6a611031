"""Clock sources for the resampling worker."""

from __future__ import annotations

import threading
import time
from typing import Callable

Clock = Callable[[], float]

# Packet timestamps are Unix seconds.
system_clock: Clock = time.time


class ManualClock:
    """Settable clock for replays and tests; never runs backwards."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def set(self, now: float) -> float:
        with self._lock:
            self._now = max(self._now, float(now))
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += float(seconds)
            return self._now
