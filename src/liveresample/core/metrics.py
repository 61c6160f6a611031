"""Lightweight counters for observing resampling throughput and lag."""

from __future__ import annotations

import os
import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Deque, Final, Optional

import psutil

MAX_SAMPLES_PERF = 300

_PROCESS: Final[psutil.Process] = psutil.Process(os.getpid())


def process_cpu_percent() -> float:
    """
    Return the current CPU usage of this process.

    psutil's cpu_percent needs to be called periodically; the first call
    may return 0.0 which is fine for a monitoring snapshot.
    """
    try:
        return float(_PROCESS.cpu_percent(interval=None))
    except psutil.Error:
        return 0.0


class InputRateEstimator:
    """
    Estimate the raw input rate from a sliding window of sample timestamps.

    Timestamps are assumed to be in seconds. Out-of-order samples are
    tolerated; the span is taken between the smallest and largest timestamp.
    """

    def __init__(self, window_size: int = 200, default_hz: float = 0.0) -> None:
        if window_size <= 1:
            raise ValueError("window_size must be > 1")
        self._times: Deque[float] = deque(maxlen=window_size)
        self.default_hz = float(default_hz)

    def feed_times(self, times: Iterable[float]) -> None:
        self._times.extend(float(t) for t in times)

    @property
    def estimated_hz(self) -> float:
        if len(self._times) < 2:
            return self.default_hz
        span = max(self._times) - min(self._times)
        if span <= 0:
            return self.default_hz
        return (len(self._times) - 1) / span

    def reset(self) -> None:
        self._times.clear()


@dataclass
class WorkerStats:
    """
    Counters updated by the resampling worker and read by monitoring code.

    A growing ``lag_s`` means the worker cannot keep pace with the clock; that
    is the only externally visible failure mode of the engine.
    """

    cycles: int = 0
    idle_cycles: int = 0
    samples_merged: int = 0
    points_emitted: int = 0
    points_skipped: int = 0
    errors: int = 0
    lag_s: float = 0.0
    last_error: Optional[str] = None
    cycle_durations: Deque[float] = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES_PERF))
    input_rate: InputRateEstimator = field(default_factory=InputRateEstimator)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_cycle(self, duration_s: float, *, merged: int, emitted: int, lag_s: float) -> None:
        with self._lock:
            self.cycles += 1
            self.samples_merged += merged
            self.points_emitted += emitted
            self.lag_s = lag_s
            self.cycle_durations.append(duration_s)

    def record_input(self, times: Iterable[float]) -> None:
        with self._lock:
            self.input_rate.feed_times(times)

    def record_idle(self) -> None:
        with self._lock:
            self.cycles += 1
            self.idle_cycles += 1

    def record_skipped(self, count: int) -> None:
        with self._lock:
            self.points_skipped += count

    def record_error(self, exc: BaseException) -> None:
        with self._lock:
            self.errors += 1
            self.last_error = f"{type(exc).__name__}: {exc}"

    def avg_cycle_ms(self) -> float:
        with self._lock:
            if not self.cycle_durations:
                return 0.0
            return 1000.0 * sum(self.cycle_durations) / len(self.cycle_durations)

    def max_cycle_ms(self) -> float:
        with self._lock:
            if not self.cycle_durations:
                return 0.0
            return 1000.0 * max(self.cycle_durations)

    def as_dict(self) -> dict[str, float | int | str | None]:
        """Snapshot suitable for structured logging or a status endpoint."""
        avg_ms = self.avg_cycle_ms()
        max_ms = self.max_cycle_ms()
        with self._lock:
            return {
                "cycles": self.cycles,
                "idle_cycles": self.idle_cycles,
                "samples_merged": self.samples_merged,
                "points_emitted": self.points_emitted,
                "points_skipped": self.points_skipped,
                "errors": self.errors,
                "last_error": self.last_error,
                "lag_ms": 1000.0 * self.lag_s,
                "avg_cycle_ms": avg_ms,
                "max_cycle_ms": max_ms,
                "input_rate_hz": self.input_rate.estimated_hz,
                "process_cpu_percent": process_cpu_percent(),
            }

    def reset(self) -> None:
        with self._lock:
            self.cycles = 0
            self.idle_cycles = 0
            self.samples_merged = 0
            self.points_emitted = 0
            self.points_skipped = 0
            self.errors = 0
            self.lag_s = 0.0
            self.last_error = None
            self.cycle_durations.clear()
            self.input_rate.reset()
