"""Reconstruct evenly spaced, band-limited signals from bursty sensor samples."""

from .config import ResamplerConfig, load_config
from .core import (
    KernelParams,
    OutputStream,
    RawSample,
    ResampledPoint,
    ResamplingPipeline,
    SignalHub,
    build_pipeline,
    interpolate,
)

__version__ = "0.1.0"

__all__ = [
    "ResamplerConfig",
    "load_config",
    "KernelParams",
    "OutputStream",
    "RawSample",
    "ResampledPoint",
    "ResamplingPipeline",
    "SignalHub",
    "build_pipeline",
    "interpolate",
]
