from __future__ import annotations

import math

import numpy as np
import pytest

from liveresample.core.kernel import (
    KernelParams,
    interpolate,
    interpolate_many,
    kernel_weights,
    lanczos,
    sinc,
)

PARAMS = KernelParams(target_rate_hz=100.0, cutoff_hz=50.0, half_width_s=0.06)


def _reference(t: float, samples: list[tuple[float, float]], params: KernelParams) -> float:
    """Straight transcription of the windowed-sinc sum for a handful of samples."""
    num = 0.0
    den = 0.0
    for ts, value in samples:
        dt = t - ts
        if abs(dt) > params.half_width_s:
            continue
        x = 2.0 * math.pi * params.cutoff_hz * dt
        s = 1.0 if abs(x) < 1e-12 else math.sin(x) / x
        u = dt / params.half_width_s
        lz = 1.0 if abs(u) < 1e-12 else math.sin(math.pi * u) / (math.pi * u)
        w = s * lz
        num += w * value
        den += w
    return num / den


def test_sinc_and_lanczos_shapes() -> None:
    assert sinc(np.array([0.0]))[0] == 1.0
    assert sinc(np.array([math.pi]))[0] == pytest.approx(0.0, abs=1e-12)
    assert lanczos(np.array([0.0]))[0] == 1.0
    assert lanczos(np.array([1.5, -2.0])).tolist() == [0.0, 0.0]
    assert lanczos(np.array([1.0]))[0] == pytest.approx(0.0, abs=1e-12)
    assert lanczos(np.array([0.5]))[0] == pytest.approx(2.0 / math.pi)


def test_kernel_weights_vanish_outside_support() -> None:
    weights = kernel_weights(np.array([-0.07, 0.0, 0.07]), PARAMS)
    assert weights.tolist() == [0.0, 1.0, 0.0]


def test_single_constant_sample_is_reproduced_across_window() -> None:
    times = np.array([1.0])
    values = np.array([3.5])
    for t in np.linspace(1.0 - 0.059, 1.0 + 0.059, 97):
        assert interpolate(float(t), times, values, PARAMS) == pytest.approx(3.5, abs=1e-9)


def test_matches_reference_formula_for_sparse_burst() -> None:
    samples = [(0.000, 1.0), (0.004, 1.2), (0.009, 0.8)]
    times = np.array([s[0] for s in samples])
    values = np.array([s[1] for s in samples])
    for t in (0.0, 0.005, 0.010, 0.020):
        assert interpolate(t, times, values, PARAMS) == pytest.approx(_reference(t, samples, PARAMS), rel=1e-12)


def test_irregular_dense_sine_reconstructed_within_one_percent() -> None:
    rng = np.random.default_rng(1234)
    nominal = 1.0 / 1000.0  # 20x the 50 Hz cutoff
    steps = nominal * (1.0 + 0.3 * rng.uniform(-1.0, 1.0, size=3000))
    times = np.cumsum(steps)
    amplitude = 1.0
    freq = 2.0
    values = amplitude * np.sin(2.0 * np.pi * freq * times)

    start = math.ceil((times[0] + PARAMS.half_width_s) * 100.0) / 100.0
    stop = times[-1] - PARAMS.half_width_s
    grid = np.arange(start, stop, PARAMS.grid_period_s)
    estimate = interpolate_many(grid, times, values, PARAMS)
    truth = amplitude * np.sin(2.0 * np.pi * freq * grid)

    rms = float(np.sqrt(np.mean((estimate - truth) ** 2)))
    assert grid.size > 200
    assert rms < 0.01 * amplitude


def test_absolute_normalization_damps_constant_signal() -> None:
    times = np.arange(-0.06, 0.0601, 0.001)
    values = np.ones_like(times)
    damped = KernelParams(100.0, 50.0, 0.06, normalization="absolute")

    assert interpolate(0.0, times, values, PARAMS) == pytest.approx(1.0, abs=1e-9)
    absolute = interpolate(0.0, times, values, damped)
    assert 0.0 < absolute < 1.0


def test_gap_falls_back_to_last_known_value() -> None:
    times = np.array([0.0, 0.1])
    values = np.array([1.0, 2.0])
    assert interpolate(0.5, times, values, PARAMS) == 2.0
    assert interpolate(-1.0, times, values, PARAMS, default=7.0) == 7.0


def test_empty_history_returns_default_never_nan() -> None:
    empty = np.empty(0)
    assert interpolate(0.0, empty, empty, PARAMS) == 0.0
    assert interpolate(0.0, empty, empty, PARAMS, default=4.2) == 4.2
    assert interpolate(0.0, empty, empty, PARAMS, default=math.nan) == 0.0


def test_degenerate_normalization_uses_nearest_sample() -> None:
    # A lone sample one sinc zero-crossing away carries (numerically) no weight.
    times = np.array([0.0])
    values = np.array([5.0])
    assert interpolate(0.01, times, values, PARAMS) == 5.0


def test_non_finite_values_are_ignored() -> None:
    times = np.array([0.0, 0.002, 0.004])
    values = np.array([1.0, math.nan, 1.0])
    result = interpolate(0.002, times, values, PARAMS)
    assert math.isfinite(result)
    assert result == pytest.approx(1.0)


def test_kernel_params_validation() -> None:
    with pytest.raises(ValueError):
        KernelParams(target_rate_hz=100.0, cutoff_hz=60.0, half_width_s=0.06)
    with pytest.raises(ValueError):
        KernelParams(target_rate_hz=100.0, cutoff_hz=50.0, half_width_s=0.0)
    with pytest.raises(ValueError):
        KernelParams(target_rate_hz=100.0, cutoff_hz=50.0, half_width_s=0.06, normalization="l2")
    assert PARAMS.grid_period_s == pytest.approx(0.01)


def test_irregular_sine_at_five_times_grid_nyquist() -> None:
    rng = np.random.default_rng(250)
    nominal = 1.0 / 250.0  # 5x the 50 Hz grid Nyquist
    steps = nominal * (1.0 + 0.3 * rng.uniform(-1.0, 1.0, size=1000))
    times = np.cumsum(steps)
    values = np.sin(2.0 * np.pi * 2.0 * times)

    start = math.ceil((times[0] + PARAMS.half_width_s) * 100.0) / 100.0
    stop = times[-1] - PARAMS.half_width_s
    grid = np.arange(start, stop, PARAMS.grid_period_s)
    estimate = interpolate_many(grid, times, values, PARAMS)
    truth = np.sin(2.0 * np.pi * 2.0 * grid)

    rms = float(np.sqrt(np.mean((estimate - truth) ** 2)))
    assert grid.size > 300
    assert rms < 0.01
