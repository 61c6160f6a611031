"""Core resampling engine: queues, history, kernel, and the worker.

Raw bursts flow through :class:`IngestQueue` into the worker-owned
:class:`HistoryBuffer`; the :class:`ResamplingWorker` reconstructs values on a
fixed grid with the Lanczos-windowed sinc kernel and publishes them to an
:class:`OutputStream` for the rendering layer.
"""

from .clock import ManualClock, system_clock
from .history import HistoryBuffer, HistorySnapshot
from .ingest_queue import IngestQueue
from .kernel import KernelParams, interpolate, interpolate_many, kernel_weights, lanczos, sinc
from .metrics import InputRateEstimator, WorkerStats
from .models import RawSample, ResampledPoint, SignalBurst, SignalInfo
from .output_stream import OutputStream
from .worker import ResamplingWorker, WorkerState

# High-level wiring
from .pipeline import ResamplingPipeline, build_pipeline
from .signal_hub import SignalHub
from .stream_reader import StreamReaderHandle, reader_loop, start_reader

__all__ = [
    "ManualClock",
    "system_clock",
    "HistoryBuffer",
    "HistorySnapshot",
    "IngestQueue",
    "KernelParams",
    "interpolate",
    "interpolate_many",
    "kernel_weights",
    "lanczos",
    "sinc",
    "InputRateEstimator",
    "WorkerStats",
    "RawSample",
    "ResampledPoint",
    "SignalBurst",
    "SignalInfo",
    "OutputStream",
    "ResamplingWorker",
    "WorkerState",
    "ResamplingPipeline",
    "build_pipeline",
    "SignalHub",
    "StreamReaderHandle",
    "reader_loop",
    "start_reader",
]
