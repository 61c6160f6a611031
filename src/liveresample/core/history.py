"""Time-bounded, sorted store of raw samples used as interpolation support."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .models import RawSample

logger = logging.getLogger(__name__)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class HistorySnapshot:
    """
    Immutable copy of the history buffer.

    ``times`` and ``values`` are read-only ``float64`` arrays sorted by time,
    so the interpolation kernel can read them without holding any lock.
    """

    times: np.ndarray
    values: np.ndarray

    @classmethod
    def empty(cls) -> "HistorySnapshot":
        return cls(
            times=_readonly(np.empty(0, dtype=np.float64)),
            values=_readonly(np.empty(0, dtype=np.float64)),
        )

    def __len__(self) -> int:
        return int(self.times.size)

    def latest(self) -> Optional[RawSample]:
        """Return the newest sample, or ``None`` when empty."""
        if self.times.size == 0:
            return None
        return RawSample(float(self.times[-1]), float(self.values[-1]))

    def window(self, start: float, end: float) -> tuple[np.ndarray, np.ndarray]:
        """Return timestamps and values in the closed interval ``[start, end]``."""
        if end < start:
            start, end = end, start
        lo = int(np.searchsorted(self.times, start, side="left"))
        hi = int(np.searchsorted(self.times, end, side="right"))
        if hi <= lo:
            return self.times[:0], self.values[:0]
        return self.times[lo:hi], self.values[lo:hi]


class HistoryBuffer:
    """
    Ordered sliding window of raw samples.

    Only the resampling worker mutates an instance; readers work on
    :class:`HistorySnapshot` copies instead.

    Parameters
    ----------
    retention_seconds:
        Maximum age (relative to ``now`` passed to :meth:`merge` /
        :meth:`prune`) of retained samples.
    max_samples:
        Optional hard cap protecting against unbounded growth when timestamps
        are bogus (e.g. far in the future). The oldest samples go first.
    """

    def __init__(self, retention_seconds: float, *, max_samples: int | None = None) -> None:
        retention = float(retention_seconds)
        if not math.isfinite(retention) or retention <= 0.0:
            raise ValueError("retention_seconds must be positive")
        if max_samples is not None and max_samples <= 0:
            raise ValueError("max_samples must be positive")
        self._retention = retention
        self._max_samples = max_samples
        self._times = np.empty(0, dtype=np.float64)
        self._values = np.empty(0, dtype=np.float64)

    @property
    def retention_seconds(self) -> float:
        return self._retention

    def __len__(self) -> int:
        return int(self._times.size)

    def oldest_timestamp(self) -> Optional[float]:
        if self._times.size == 0:
            return None
        return float(self._times[0])

    def newest_timestamp(self) -> Optional[float]:
        if self._times.size == 0:
            return None
        return float(self._times[-1])

    # ------------------------------------------------------------------ mutate
    def merge(self, batch: Sequence[RawSample], now: float) -> int:
        """
        Append ``batch``, restore timestamp order, then prune by age.

        The sort is stable, so samples with equal timestamps keep the order in
        which they arrived. Returns the number of samples appended; an empty
        batch leaves the buffer untouched.
        """
        count = len(batch)
        if count == 0:
            return 0

        new_times = np.fromiter((s.timestamp for s in batch), dtype=np.float64, count=count)
        new_values = np.fromiter((s.value for s in batch), dtype=np.float64, count=count)
        finite = np.isfinite(new_times)
        if not finite.all():
            logger.warning("Ignoring %d samples without a usable timestamp", int(count - finite.sum()))
            new_times = new_times[finite]
            new_values = new_values[finite]
            count = int(new_times.size)
            if count == 0:
                return 0

        times = np.concatenate((self._times, new_times))
        values = np.concatenate((self._values, new_values))
        # Only sort when the batch interleaves with (or within) existing data.
        if np.any(np.diff(times) < 0.0):
            order = np.argsort(times, kind="stable")
            times = times[order]
            values = values[order]

        self._times = times
        self._values = values
        self.prune(now)
        self._enforce_capacity()
        return count

    def prune(self, now: float) -> int:
        """Drop samples older than ``now - retention``; returns how many."""
        if self._times.size == 0:
            return 0
        threshold = float(now) - self._retention
        cut = int(np.searchsorted(self._times, threshold, side="left"))
        if cut == 0:
            return 0
        self._times = self._times[cut:]
        self._values = self._values[cut:]
        return cut

    def clear(self) -> None:
        self._times = np.empty(0, dtype=np.float64)
        self._values = np.empty(0, dtype=np.float64)

    def _enforce_capacity(self) -> None:
        limit = self._max_samples
        if limit is None or self._times.size <= limit:
            return
        excess = int(self._times.size - limit)
        logger.debug("History over capacity (%d > %d); dropping %d oldest", self._times.size, limit, excess)
        self._times = self._times[excess:]
        self._values = self._values[excess:]

    # -------------------------------------------------------------------- read
    def snapshot(self) -> HistorySnapshot:
        """Return an immutable copy of the current contents."""
        if self._times.size == 0:
            return HistorySnapshot.empty()
        return HistorySnapshot(
            times=_readonly(self._times.copy()),
            values=_readonly(self._values.copy()),
        )
