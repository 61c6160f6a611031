"""Background task that turns raw bursts into an evenly spaced output stream.

The worker is the single writer of the history buffer and of the resampling
cursor. Producers only touch the :class:`~.ingest_queue.IngestQueue` and
consumers only touch the :class:`~.output_stream.OutputStream`, so the
interpolation loop itself runs without any locking.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from enum import Enum
from typing import Optional

from ..tools.debug import time_block
from .clock import Clock, system_clock
from .history import HistoryBuffer
from .ingest_queue import IngestQueue
from .kernel import KernelParams, interpolate
from .metrics import WorkerStats
from .models import ResampledPoint
from .output_stream import OutputStream

logger = logging.getLogger(__name__)

# Absorbs float error when snapping a timestamp onto the grid.
_GRID_SNAP_TOLERANCE = 1e-9


class WorkerState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    MERGING = "merging"
    ADVANCING = "advancing"
    STOPPED = "stopped"


class ResamplingWorker:
    """
    Drain raw samples, keep the history window current, and emit one
    :class:`ResampledPoint` per grid period up to ``now - latency_margin``.

    Parameters
    ----------
    ingest, history, output:
        The hand-off queue, the support buffer, and the output channel.
    params:
        Interpolation kernel settings; the grid period is
        ``1 / params.target_rate_hz``.
    latency_margin_s:
        Points are only produced once they are this far behind ``clock()``,
        so each estimate sees samples on both sides of it.
    grid_origin_s:
        Grid timestamps are ``grid_origin_s + k * period`` for integer ``k``.
    clock:
        Returns "now" in the same time base as the sample timestamps.
    max_backlog_s:
        If the cursor trails the horizon by more than this, it jumps forward
        instead of emitting a flood of stale points. Defaults to the history
        retention window.
    idle_backoff_min_s, idle_backoff_max_s:
        Bounds of the doubling wait used when no raw data is pending.
    """

    def __init__(
        self,
        ingest: IngestQueue,
        history: HistoryBuffer,
        output: OutputStream,
        params: KernelParams,
        *,
        latency_margin_s: float,
        grid_origin_s: float = 0.0,
        clock: Clock = system_clock,
        max_backlog_s: float | None = None,
        idle_backoff_min_s: float = 0.001,
        idle_backoff_max_s: float = 0.02,
        stats: WorkerStats | None = None,
        name: str = "ResamplingWorker",
    ) -> None:
        if latency_margin_s < 0.0:
            raise ValueError("latency_margin_s must be >= 0")
        if idle_backoff_min_s <= 0.0 or idle_backoff_max_s < idle_backoff_min_s:
            raise ValueError("idle backoff bounds must satisfy 0 < min <= max")
        self._ingest = ingest
        self._history = history
        self._output = output
        self._params = params
        self._period = params.grid_period_s
        self._margin = float(latency_margin_s)
        self._origin = float(grid_origin_s)
        self._clock = clock
        self._max_backlog = float(max_backlog_s) if max_backlog_s is not None else history.retention_seconds
        self._backoff_min = float(idle_backoff_min_s)
        self._backoff_max = float(idle_backoff_max_s)
        self._stats = stats or WorkerStats()
        self._name = name

        self._cursor_index: Optional[int] = None
        self._last_value: Optional[float] = None
        self._last_drained = 0
        self._state = WorkerState.IDLE
        self._reset_requested = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------- properties
    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def params(self) -> KernelParams:
        return self._params

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    @property
    def grid_period_s(self) -> float:
        return self._period

    @property
    def latency_margin_s(self) -> float:
        return self._margin

    @property
    def cursor_index(self) -> Optional[int]:
        return self._cursor_index

    @property
    def cursor(self) -> Optional[float]:
        """Timestamp of the last emitted grid point, ``None`` before the first."""
        if self._cursor_index is None:
            return None
        return self.grid_time(self._cursor_index)

    def grid_time(self, index: int) -> float:
        return self._origin + index * self._period

    # ------------------------------------------------------------------ cycle
    def step(self, now: float | None = None) -> list[ResampledPoint]:
        """
        Run one drain/merge/advance cycle and return the points it emitted.

        When nothing is pending the cycle ends immediately: the history
        buffer is not touched and no point is produced.
        """
        self._ensure_not_stopped()
        self._apply_pending_reset()

        self._state = WorkerState.DRAINING
        batch = self._ingest.drain_all()
        self._last_drained = len(batch)
        if not batch:
            self._state = WorkerState.IDLE
            self._stats.record_idle()
            return []

        started = time.perf_counter()
        current = self._now(now)
        self._state = WorkerState.MERGING
        merged = self._history.merge(batch, current)
        self._stats.record_input(s.timestamp for s in batch)

        emitted = self._advance(current)
        self._state = WorkerState.IDLE
        self._stats.record_cycle(
            time.perf_counter() - started,
            merged=merged,
            emitted=len(emitted),
            lag_s=self._lag(current),
        )
        return emitted

    def flush(self, now: float | None = None) -> list[ResampledPoint]:
        """Merge anything pending and advance to the horizon even without new data."""
        self._ensure_not_stopped()
        self._apply_pending_reset()
        current = self._now(now)

        self._state = WorkerState.DRAINING
        batch = self._ingest.drain_all()
        self._last_drained = len(batch)
        if batch:
            self._state = WorkerState.MERGING
            self._history.merge(batch, current)
            self._stats.record_input(s.timestamp for s in batch)

        emitted = self._advance(current)
        self._state = WorkerState.IDLE
        return emitted

    def request_reset(self) -> None:
        """Ask the worker to clear history and cursor at the start of its next cycle."""
        self._reset_requested.set()

    def _apply_pending_reset(self) -> None:
        if not self._reset_requested.is_set():
            return
        self._reset_requested.clear()
        self._history.clear()
        self._cursor_index = None
        self._last_value = None
        logger.info("%s: history and cursor re-initialised", self._name)

    def _advance(self, now: float) -> list[ResampledPoint]:
        self._state = WorkerState.ADVANCING
        horizon = now - self._margin

        if self._cursor_index is None:
            oldest = self._history.oldest_timestamp()
            if oldest is None:
                return []
            self._cursor_index = self._first_index_at_or_after(oldest) - 1
            logger.debug("%s: cursor initialised at grid index %d", self._name, self._cursor_index + 1)

        self._skip_backlog(horizon)

        snapshot = self._history.snapshot()
        emitted: list[ResampledPoint] = []
        while True:
            next_index = self._cursor_index + 1
            t = self.grid_time(next_index)
            if t > horizon:
                break
            default = self._last_value if self._last_value is not None else 0.0
            value = interpolate(t, snapshot.times, snapshot.values, self._params, default=default)
            point = ResampledPoint(timestamp=t, value=value, index=next_index)
            self._cursor_index = next_index
            self._last_value = value
            self._output.publish(point)
            emitted.append(point)
        return emitted

    def _skip_backlog(self, horizon: float) -> None:
        assert self._cursor_index is not None
        oldest_allowed = horizon - self._max_backlog
        if self.grid_time(self._cursor_index + 1) >= oldest_allowed:
            return
        target = self._first_index_at_or_after(oldest_allowed) - 1
        skipped = target - self._cursor_index
        if skipped <= 0:
            return
        logger.warning(
            "%s: cursor %.3f s behind horizon; skipping %d grid points",
            self._name,
            horizon - self.grid_time(self._cursor_index),
            skipped,
        )
        self._stats.record_skipped(skipped)
        self._cursor_index = target

    def _first_index_at_or_after(self, timestamp: float) -> int:
        return int(math.ceil((timestamp - self._origin) / self._period - _GRID_SNAP_TOLERANCE))

    def _lag(self, now: float) -> float:
        if self._cursor_index is None:
            return 0.0
        return max(0.0, (now - self._margin) - self.grid_time(self._cursor_index))

    def _now(self, now: float | None) -> float:
        return float(self._clock()) if now is None else float(now)

    def _ensure_not_stopped(self) -> None:
        if self._state is WorkerState.STOPPED:
            raise RuntimeError(f"{self._name} has been stopped")

    # ------------------------------------------------------------------- loop
    def run(self, stop_event: threading.Event) -> None:
        """
        Cycle until ``stop_event`` is set.

        Exceptions raised inside a cycle are logged and counted in
        :attr:`stats`; the loop carries on with the next cycle.
        """
        backoff = self._backoff_min
        logger.debug("%s: started", self._name)
        try:
            while not stop_event.is_set():
                try:
                    with time_block(f"{self._name} cycle"):
                        self.step()
                    drained = self._last_drained
                except Exception as exc:
                    logger.exception("%s: resampling cycle failed; continuing", self._name)
                    self._stats.record_error(exc)
                    self._state = WorkerState.IDLE
                    drained = 0

                if drained:
                    backoff = self._backoff_min
                    # End-of-cycle yield; doubles as a cancellation point.
                    if stop_event.wait(0):
                        break
                else:
                    if stop_event.wait(backoff):
                        break
                    backoff = min(backoff * 2.0, self._backoff_max)
        finally:
            self._state = WorkerState.STOPPED
            logger.debug("%s: stopped", self._name)

    def start(self) -> threading.Thread:
        """Run :meth:`run` in a daemon thread; returns the thread."""
        self._ensure_not_stopped()
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop_event.clear()
        thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name=self._name,
            daemon=True,
        )
        self._thread = thread
        thread.start()
        return thread

    def stop(self, timeout: float | None = 1.0) -> bool:
        """Signal the loop to exit and wait up to ``timeout``; True once stopped."""
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            self._state = WorkerState.STOPPED
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
