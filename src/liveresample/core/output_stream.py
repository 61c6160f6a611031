"""Bounded FIFO of reconstructed points with drop-oldest overflow."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Callable, Optional

from .models import ResampledPoint

logger = logging.getLogger(__name__)

PointListener = Callable[[ResampledPoint], None]


class OutputStream:
    """
    Channel between the resampling worker (single producer) and any number of
    consumers.

    The producer never blocks: once ``maxsize`` points are waiting, the oldest
    one is discarded to make room, keeping latency low for live plots.
    ``maxsize=0`` makes the stream unbounded.
    """

    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError("maxsize must be >= 0")
        self._queue: Queue[ResampledPoint] = Queue(maxsize=maxsize)
        self._listeners: list[PointListener] = []
        self._lock = threading.Lock()
        self._dropped = 0
        self._published = 0

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def published(self) -> int:
        with self._lock:
            return self._published

    def qsize(self) -> int:
        return self._queue.qsize()

    # ---------------------------------------------------------------- producer
    def publish(self, point: ResampledPoint) -> None:
        """Hand ``point`` to consumers; evicts the oldest point when full."""
        dropped = self._offer(point)
        with self._lock:
            self._published += 1
            self._dropped += dropped
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(point)
            except Exception:
                logger.exception("Output listener %r failed for point %r", listener, point)

    def _offer(self, point: ResampledPoint) -> int:
        """Best-effort put; returns how many queued points were evicted."""
        try:
            self._queue.put_nowait(point)
            return 0
        except Full:
            evicted = 0
            try:
                self._queue.get_nowait()
                evicted = 1
            except Empty:
                pass
            self._queue.put_nowait(point)
            return evicted

    # --------------------------------------------------------------- consumers
    def get(self, timeout: Optional[float] = None) -> ResampledPoint:
        """Block up to ``timeout`` seconds for the next point (raises ``queue.Empty``)."""
        return self._queue.get(timeout=timeout)

    def drain(self, max_items: Optional[int] = None) -> list[ResampledPoint]:
        """Return everything currently queued (at most ``max_items``) without blocking."""
        items: list[ResampledPoint] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._queue.get_nowait())
            except Empty:
                break
        return items

    def add_listener(self, listener: PointListener) -> None:
        """Register a push-style consumer, called from the worker thread."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: PointListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
