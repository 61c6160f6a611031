"""Factory and facade that wire queue, history, worker, and output together."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional

from .clock import Clock, system_clock
from .history import HistoryBuffer
from .ingest_queue import IngestQueue
from .kernel import KernelParams
from .metrics import WorkerStats
from .models import RawSample, ResampledPoint
from .output_stream import OutputStream
from .worker import ResamplingWorker, WorkerState

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..config import ResamplerConfig

logger = logging.getLogger(__name__)

__all__ = ["ResamplingPipeline", "build_pipeline"]


class ResamplingPipeline:
    """
    One resampled signal: producers call :meth:`enqueue`, consumers read
    :attr:`output`, and a background worker does everything in between.

    Kernel parameters and timing settings are fixed at construction.
    """

    def __init__(
        self,
        cfg: ResamplerConfig,
        *,
        clock: Clock = system_clock,
        output: OutputStream | None = None,
        name: str = "ResamplingWorker",
    ) -> None:
        self._cfg = cfg.sanitized()
        self._params: KernelParams = self._cfg.to_kernel_params()
        self._ingest = IngestQueue()
        self._history = HistoryBuffer(
            self._cfg.retention_seconds,
            max_samples=self._cfg.max_history_samples,
        )
        self._output = output if output is not None else OutputStream(maxsize=self._cfg.output_queue_size)
        self._stats = WorkerStats()
        self._worker = ResamplingWorker(
            self._ingest,
            self._history,
            self._output,
            self._params,
            latency_margin_s=self._cfg.latency_margin_s,
            grid_origin_s=self._cfg.grid_origin_s,
            clock=clock,
            max_backlog_s=self._cfg.max_backlog_seconds,
            idle_backoff_min_s=self._cfg.idle_backoff_min_s,
            idle_backoff_max_s=self._cfg.idle_backoff_max_s,
            stats=self._stats,
            name=name,
        )

    # ------------------------------------------------------------- producers
    def enqueue(self, sample: RawSample) -> None:
        """Thread-safe, non-blocking submission of one raw sample."""
        self._ingest.enqueue(sample)

    def enqueue_many(self, samples: Iterable[RawSample]) -> int:
        return self._ingest.enqueue_many(samples)

    def submit(self, timestamp: float, value: float) -> None:
        """Append a single sample (convenience helper)."""
        self._ingest.enqueue(RawSample(float(timestamp), float(value)))

    # ------------------------------------------------------------- consumers
    @property
    def output(self) -> OutputStream:
        return self._output

    def drain(self, max_items: Optional[int] = None) -> list[ResampledPoint]:
        return self._output.drain(max_items)

    # ------------------------------------------------------------ inspection
    @property
    def config(self) -> ResamplerConfig:
        return self._cfg

    @property
    def params(self) -> KernelParams:
        return self._params

    @property
    def worker(self) -> ResamplingWorker:
        return self._worker

    @property
    def state(self) -> WorkerState:
        return self._worker.state

    @property
    def running(self) -> bool:
        return self._worker.is_alive()

    def pending(self) -> int:
        """Raw samples waiting to be drained."""
        return len(self._ingest)

    def stats(self) -> dict[str, float | int | str | None]:
        snapshot = self._stats.as_dict()
        snapshot["output_dropped"] = self._output.dropped
        snapshot["output_queued"] = self._output.qsize()
        snapshot["ingest_pending"] = len(self._ingest)
        snapshot["history_size"] = len(self._history)
        return snapshot

    # -------------------------------------------------------------- lifecycle
    def start(self) -> None:
        self._worker.start()

    def stop(self, timeout: float | None = None) -> bool:
        """Stop the worker; waits at most ``stop_timeout_s`` unless overridden."""
        wait = self._cfg.stop_timeout_s if timeout is None else timeout
        stopped = self._worker.stop(wait)
        if not stopped:
            logger.warning("Resampling worker did not stop within %.3f s", wait)
        return stopped

    def step(self, now: float | None = None) -> list[ResampledPoint]:
        """Run a single synchronous cycle (for callers without a worker thread)."""
        return self._worker.step(now)

    def flush(self, now: float | None = None) -> list[ResampledPoint]:
        return self._worker.flush(now)

    def reset(self) -> None:
        """Re-initialise history and cursor at the worker's next cycle."""
        self._worker.request_reset()

    def __enter__(self) -> "ResamplingPipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def build_pipeline(
    cfg: ResamplerConfig,
    *,
    clock: Clock | None = None,
    output: OutputStream | None = None,
    start: bool = False,
    name: str | None = None,
) -> ResamplingPipeline:
    """
    Build a :class:`ResamplingPipeline` from configuration.

    Parameters
    ----------
    cfg:
        Runtime configuration (usually loaded from YAML); sanitized here.
    clock:
        Time source in the same base as sample timestamps. Defaults to
        wall-clock seconds.
    output:
        Existing :class:`OutputStream` to publish into. When omitted, one
        sized via ``cfg.output_queue_size`` is created.
    start:
        Launch the background worker immediately.
    """
    pipeline = ResamplingPipeline(
        cfg,
        clock=clock or system_clock,
        output=output,
        name=name or "ResamplingWorker",
    )
    if start:
        pipeline.start()
    return pipeline
