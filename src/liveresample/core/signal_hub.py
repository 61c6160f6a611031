"""Registry of one resampling pipeline per incoming signal."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

from .clock import Clock, system_clock
from .models import ResampledPoint, SignalBurst, SignalInfo
from .pipeline import ResamplingPipeline, build_pipeline

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..config import ResamplerConfig

logger = logging.getLogger(__name__)


class SignalHub:
    """Mapping of signal id -> :class:`ResamplingPipeline`.

    Pipelines are created lazily the first time a signal appears in the
    stream, so only signals that are actually transmitted cost a worker.
    The latest :class:`SignalInfo` for each signal is kept for the
    presentation layer.

    Parameters
    ----------
    default_config:
        Configuration for signals without an override.
    overrides:
        Per-signal configurations keyed by signal id.
    clock:
        Shared time source for every pipeline.
    autostart:
        Start each pipeline's worker thread on creation. Replays and tests
        pass ``False`` and drive the pipelines with :meth:`step_all`.
    """

    def __init__(
        self,
        default_config: ResamplerConfig,
        *,
        overrides: Mapping[str, ResamplerConfig] | None = None,
        clock: Clock = system_clock,
        autostart: bool = True,
    ) -> None:
        self._default = default_config.sanitized()
        self._overrides = dict(overrides or {})
        self._clock = clock
        self._autostart = autostart
        self._pipelines: Dict[str, ResamplingPipeline] = {}
        self._infos: Dict[str, SignalInfo] = {}
        self._lock = threading.RLock()
        self._closed = False

    def config_for(self, signal_id: str) -> ResamplerConfig:
        return self._overrides.get(signal_id, self._default)

    def get_or_create(self, signal_id: str) -> ResamplingPipeline:
        with self._lock:
            if self._closed:
                raise RuntimeError("SignalHub has been stopped")
            pipeline = self._pipelines.get(signal_id)
            if pipeline is None:
                pipeline = build_pipeline(
                    self.config_for(signal_id),
                    clock=self._clock,
                    start=self._autostart,
                    name=f"ResamplingWorker[{signal_id}]",
                )
                self._pipelines[signal_id] = pipeline
                logger.info("Created resampling pipeline for signal %r", signal_id)
            return pipeline

    def get(self, signal_id: str) -> Optional[ResamplingPipeline]:
        with self._lock:
            return self._pipelines.get(signal_id)

    def submit(self, burst: SignalBurst) -> int:
        """Record metadata for ``burst`` and queue its samples; returns the count."""
        signal_id = burst.signal_id
        with self._lock:
            if self._closed:
                raise RuntimeError("SignalHub has been stopped")
            info = self._infos.get(signal_id)
            if info is None:
                self._infos[signal_id] = SignalInfo(
                    id=burst.info.id,
                    name=burst.info.name,
                    unit=burst.info.unit,
                    min_value=burst.info.min_value,
                    max_value=burst.info.max_value,
                    color=burst.info.color,
                )
            else:
                info.update_from(burst.info)
        pipeline = self.get_or_create(signal_id)
        return pipeline.enqueue_many(burst.samples)

    def signal_ids(self) -> List[str]:
        with self._lock:
            return list(self._pipelines.keys())

    def signal_info(self, signal_id: str) -> Optional[SignalInfo]:
        with self._lock:
            return self._infos.get(signal_id)

    def items(self) -> List[Tuple[str, ResamplingPipeline]]:
        """Return a snapshot list of (signal_id, pipeline) pairs."""
        with self._lock:
            return list(self._pipelines.items())

    def drain_all(self) -> Dict[str, List[ResampledPoint]]:
        """Pull every queued output point, grouped by signal id."""
        return {signal_id: pipeline.drain() for signal_id, pipeline in self.items()}

    def step_all(self, now: float | None = None) -> Dict[str, List[ResampledPoint]]:
        """Run one synchronous cycle on every pipeline."""
        return {signal_id: pipeline.step(now) for signal_id, pipeline in self.items()}

    def flush_all(self, now: float | None = None) -> Dict[str, List[ResampledPoint]]:
        return {signal_id: pipeline.flush(now) for signal_id, pipeline in self.items()}

    def stats(self) -> Dict[str, dict]:
        return {signal_id: pipeline.stats() for signal_id, pipeline in self.items()}

    def stop_all(self, timeout: float | None = None) -> bool:
        """Stop every worker; returns True when all of them exited in time."""
        with self._lock:
            self._closed = True
            pipelines = list(self._pipelines.values())
        stopped = True
        for pipeline in pipelines:
            stopped = pipeline.stop(timeout) and stopped
        return stopped

    def clear(self) -> None:
        """Stop and forget every pipeline and signal description."""
        self.stop_all()
        with self._lock:
            self._pipelines.clear()
            self._infos.clear()
            self._closed = False
