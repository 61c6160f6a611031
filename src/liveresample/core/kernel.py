"""Lanczos-windowed sinc reconstruction from irregularly spaced samples.

The sinc term is the ideal low-pass reconstruction filter for a signal
band-limited below ``cutoff_hz``; the Lanczos window truncates its tail to
``half_width_s`` so every estimate only touches a handful of nearby samples.

All functions here are pure: they read numpy arrays and return floats, so they
may be called concurrently on the same read-only history snapshot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

EPSILON = 1e-12
# Normalisation below either bound is treated as degenerate.
NORM_ABS_EPSILON = 1e-12
NORM_REL_EPSILON = 1e-6

NORMALIZATION_MODES = ("signed", "absolute")


@dataclass(frozen=True)
class KernelParams:
    """
    Immutable reconstruction settings.

    target_rate_hz: output grid rate.
    cutoff_hz: low-pass cutoff, at most ``target_rate_hz / 2``.
    half_width_s: support radius of the kernel in seconds.
    normalization: ``"signed"`` divides by the signed weight sum (unit DC
        gain); ``"absolute"`` divides by the sum of absolute weights, which
        damps amplitude wherever the kernel has negative lobes.
    """

    target_rate_hz: float
    cutoff_hz: float
    half_width_s: float
    normalization: str = "signed"

    def __post_init__(self) -> None:
        for name in ("target_rate_hz", "cutoff_hz", "half_width_s"):
            value = float(getattr(self, name))
            if not math.isfinite(value) or value <= 0.0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if self.cutoff_hz > self.target_rate_hz / 2.0 * (1.0 + 1e-9):
            raise ValueError(
                f"cutoff_hz ({self.cutoff_hz}) must not exceed half the target rate ({self.target_rate_hz / 2.0})"
            )
        if self.normalization not in NORMALIZATION_MODES:
            raise ValueError(f"Unsupported normalization {self.normalization!r}; use one of {NORMALIZATION_MODES}")

    @property
    def grid_period_s(self) -> float:
        return 1.0 / float(self.target_rate_hz)


def sinc(x: np.ndarray) -> np.ndarray:
    """Unnormalised sinc, ``sin(x)/x`` with ``sinc(0) == 1``."""
    x = np.asarray(x, dtype=np.float64)
    small = np.abs(x) < EPSILON
    safe = np.where(small, 1.0, x)
    return np.where(small, 1.0, np.sin(safe) / safe)


def lanczos(u: np.ndarray) -> np.ndarray:
    """Lanczos window ``sin(pi*u)/(pi*u)`` on ``|u| <= 1`` and zero outside."""
    u = np.asarray(u, dtype=np.float64)
    au = np.abs(u)
    small = au < EPSILON
    pu = np.pi * np.where(small, 1.0, u)
    inside = np.where(small, 1.0, np.sin(pu) / pu)
    return np.where(au > 1.0, 0.0, inside)


def kernel_weights(dt: np.ndarray, params: KernelParams) -> np.ndarray:
    """Return the windowed-sinc weight for each time offset ``dt = t - t_i``."""
    dt = np.asarray(dt, dtype=np.float64)
    x = 2.0 * np.pi * float(params.cutoff_hz) * dt
    u = dt / float(params.half_width_s)
    return sinc(x) * lanczos(u)


def _last_known(times: np.ndarray, values: np.ndarray, t: float, default: float) -> float:
    """Latest finite value at or before ``t``; ``default`` if there is none."""
    idx = int(np.searchsorted(times, t, side="right"))
    while idx > 0:
        idx -= 1
        value = float(values[idx])
        if math.isfinite(value):
            return value
    return float(default)


def _nearest(times: np.ndarray, values: np.ndarray, t: float, default: float) -> float:
    """Value of the support sample closest to ``t`` (earliest wins ties)."""
    if times.size == 0:
        return float(default)
    idx = int(np.argmin(np.abs(times - t)))
    return float(values[idx])


def interpolate(
    t: float,
    times: np.ndarray,
    values: np.ndarray,
    params: KernelParams,
    *,
    default: float = 0.0,
) -> float:
    """
    Estimate the band-limited signal at instant ``t``.

    Parameters
    ----------
    t:
        Target instant, in the same time base as ``times``.
    times, values:
        Support samples sorted by time (typically a
        :class:`~liveresample.core.history.HistorySnapshot`).
    params:
        Kernel configuration.
    default:
        Returned when no usable support exists at all.

    Never raises for data-dependent reasons and never returns NaN/inf:
    gaps fall back to the last known value and a degenerate normalisation
    falls back to the nearest support sample.
    """
    t = float(t)
    times = np.asarray(times, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    if not math.isfinite(default):
        default = 0.0
    if times.size == 0:
        return float(default)

    hw = float(params.half_width_s)
    lo = int(np.searchsorted(times, t - hw, side="left"))
    hi = int(np.searchsorted(times, t + hw, side="right"))
    support_t = times[lo:hi]
    support_v = values[lo:hi]

    finite = np.isfinite(support_v)
    if not finite.all():
        support_t = support_t[finite]
        support_v = support_v[finite]

    if support_t.size == 0:
        return _last_known(times, values, t, default)

    weights = kernel_weights(t - support_t, params)
    if params.normalization == "absolute":
        norm = float(np.sum(np.abs(weights)))
    else:
        norm = float(np.sum(weights))
    total = float(np.sum(np.abs(weights)))

    if (
        not math.isfinite(norm)
        or abs(norm) <= NORM_ABS_EPSILON
        or abs(norm) <= NORM_REL_EPSILON * total
    ):
        return _nearest(support_t, support_v, t, default)

    result = float(np.dot(weights, support_v)) / norm
    if not math.isfinite(result):
        return _nearest(support_t, support_v, t, default)
    return result


def interpolate_many(
    instants: np.ndarray,
    times: np.ndarray,
    values: np.ndarray,
    params: KernelParams,
    *,
    default: float = 0.0,
) -> np.ndarray:
    """Evaluate :func:`interpolate` at each of ``instants``.

    The running default is the previous estimate, matching how the worker
    carries the last emitted value forward across gaps.
    """
    instants = np.asarray(instants, dtype=np.float64).reshape(-1)
    out = np.empty(instants.size, dtype=np.float64)
    last = float(default)
    for i, t in enumerate(instants):
        last = interpolate(float(t), times, values, params, default=last)
        out[i] = last
    return out
