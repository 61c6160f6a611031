"""Multi-producer, single-consumer hand-off for raw samples."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from typing import Deque

from .models import RawSample


class IngestQueue:
    """Unbounded queue that producers append to and the worker drains at once.

    Producers never block for longer than a deque append and nothing is ever
    dropped. Each producer's submission order is preserved; ordering across
    producers is restored later by sorting on timestamp.
    """

    def __init__(self) -> None:
        self._items: Deque[RawSample] = deque()
        self._lock = threading.Lock()
        self._total = 0

    def enqueue(self, sample: RawSample) -> None:
        """Queue a single sample."""
        with self._lock:
            self._items.append(sample)
            self._total += 1

    def enqueue_many(self, samples: Iterable[RawSample]) -> int:
        """Queue a burst so that it lands contiguously; returns its length."""
        batch = list(samples)
        if not batch:
            return 0
        with self._lock:
            self._items.extend(batch)
            self._total += len(batch)
        return len(batch)

    def drain_all(self) -> list[RawSample]:
        """Remove and return everything queued so far, in arrival order."""
        with self._lock:
            if not self._items:
                return []
            items, self._items = self._items, deque()
        return list(items)

    @property
    def total_enqueued(self) -> int:
        with self._lock:
            return self._total

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
