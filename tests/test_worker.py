from __future__ import annotations

import math
import time

import numpy as np
import pytest

from liveresample.core.clock import ManualClock
from liveresample.core.history import HistoryBuffer
from liveresample.core.ingest_queue import IngestQueue
from liveresample.core.kernel import KernelParams
from liveresample.core.models import RawSample
from liveresample.core.output_stream import OutputStream
from liveresample.core.worker import ResamplingWorker, WorkerState

PARAMS = KernelParams(target_rate_hz=100.0, cutoff_hz=50.0, half_width_s=0.06)


def _reference(t: float, samples: list[tuple[float, float]]) -> float:
    num = den = 0.0
    for ts, value in samples:
        dt = t - ts
        if abs(dt) > PARAMS.half_width_s:
            continue
        x = 2.0 * math.pi * PARAMS.cutoff_hz * dt
        s = 1.0 if abs(x) < 1e-12 else math.sin(x) / x
        u = dt / PARAMS.half_width_s
        lz = 1.0 if abs(u) < 1e-12 else math.sin(math.pi * u) / (math.pi * u)
        num += s * lz * value
        den += s * lz
    return num / den


def _make_worker(history_cls=HistoryBuffer, retention: float = 5.0, clock=None, **kwargs):
    ingest = IngestQueue()
    history = history_cls(retention)
    output = OutputStream()
    worker = ResamplingWorker(
        ingest,
        history,
        output,
        PARAMS,
        latency_margin_s=0.02,
        clock=clock or ManualClock(),
        **kwargs,
    )
    return worker, ingest, history, output


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_three_sample_burst_emits_first_three_grid_points() -> None:
    worker, ingest, _, output = _make_worker()
    samples = [(0.000, 1.0), (0.004, 1.2), (0.009, 0.8)]
    ingest.enqueue_many(RawSample(t, v) for t, v in samples)

    # Horizon = 45 ms - 20 ms margin = 25 ms.
    emitted = worker.step(now=0.045)

    assert [p.index for p in emitted] == [0, 1, 2]
    assert [p.timestamp for p in emitted] == pytest.approx([0.0, 0.01, 0.02])
    for point in emitted:
        assert point.value == pytest.approx(_reference(point.timestamp, samples), rel=1e-12)
        assert 0.8 <= point.value <= 1.2
        assert all(abs(point.timestamp - t) <= PARAMS.half_width_s for t, _ in samples)
    assert [p.index for p in output.drain()] == [0, 1, 2]
    assert worker.cursor == pytest.approx(0.02)


def test_empty_burst_changes_nothing() -> None:
    worker, ingest, history, output = _make_worker()
    ingest.enqueue_many([RawSample(0.0, 1.0), RawSample(0.004, 1.2), RawSample(0.009, 0.8)])
    worker.step(now=0.045)
    output.drain()
    before = history.snapshot()

    assert worker.step(now=10.0) == []

    after = history.snapshot()
    np.testing.assert_array_equal(before.times, after.times)
    np.testing.assert_array_equal(before.values, after.values)
    assert output.drain() == []
    assert worker.cursor == pytest.approx(0.02)
    assert worker.state is WorkerState.IDLE


def test_emitted_timestamps_step_by_exactly_one_grid_period() -> None:
    worker, ingest, _, _ = _make_worker()
    rng = np.random.default_rng(7)
    t = 0.0
    emitted = []
    for burst in range(40):
        batch = []
        for _ in range(20):
            batch.append(RawSample(t, math.sin(2.0 * math.pi * 3.0 * t)))
            t += 0.0025 * (1.0 + 0.4 * rng.uniform(-1.0, 1.0))
        ingest.enqueue_many(batch)
        emitted.extend(worker.step(now=t))

    assert len(emitted) > 100
    indexes = [p.index for p in emitted]
    assert indexes == list(range(indexes[0], indexes[0] + len(indexes)))
    diffs = np.diff([p.timestamp for p in emitted])
    assert diffs == pytest.approx(np.full(diffs.size, 0.01), abs=1e-12)
    assert all(math.isfinite(p.value) for p in emitted)


def test_cursor_starts_at_first_grid_point_after_oldest_sample() -> None:
    worker, ingest, _, _ = _make_worker()
    ingest.enqueue_many([RawSample(0.004, 1.0), RawSample(0.031, 1.0)])
    emitted = worker.step(now=0.065)
    assert [p.index for p in emitted] == [1, 2, 3, 4]


def test_cursor_skips_forward_after_long_gap() -> None:
    worker, ingest, _, _ = _make_worker(retention=1.0)
    ingest.enqueue(RawSample(0.0, 1.0))
    worker.step(now=0.05)

    ingest.enqueue(RawSample(10.0, 2.0))
    emitted = worker.step(now=10.0)

    assert worker.stats.points_skipped > 0
    assert emitted[0].timestamp >= 10.0 - 0.02 - 1.0 - 1e-9
    assert emitted[-1].timestamp <= 10.0 - 0.02 + 1e-9
    assert all(math.isfinite(p.value) for p in emitted)


def test_reset_reinitialises_cursor_and_history() -> None:
    worker, ingest, history, _ = _make_worker()
    ingest.enqueue_many([RawSample(0.0, 1.0), RawSample(0.009, 1.0)])
    worker.step(now=0.045)

    worker.request_reset()
    ingest.enqueue_many([RawSample(0.0, 3.0)])
    emitted = worker.step(now=0.045)

    assert emitted[0].index == 0
    assert len(history) == 1
    assert emitted[0].value == pytest.approx(3.0)


def test_flush_advances_without_new_data() -> None:
    worker, ingest, _, _ = _make_worker()
    ingest.enqueue_many([RawSample(0.0, 1.0), RawSample(0.009, 1.0)])
    assert len(worker.step(now=0.025)) == 1

    flushed = worker.flush(now=0.065)
    assert [p.index for p in flushed] == [1, 2, 3, 4]


def test_background_worker_emits_and_stops_promptly() -> None:
    clock = ManualClock(0.0)
    worker, ingest, _, output = _make_worker(clock=clock)
    worker.start()
    try:
        ingest.enqueue_many([RawSample(0.0, 1.0), RawSample(0.005, 1.0)])
        clock.set(0.1)
        ingest.enqueue(RawSample(0.1, 1.0))
        assert _wait_for(lambda: output.qsize() >= 5)
    finally:
        started = time.perf_counter()
        assert worker.stop(timeout=1.0)
        assert time.perf_counter() - started < 0.5

    assert worker.state is WorkerState.STOPPED
    assert not worker.is_alive()
    with pytest.raises(RuntimeError):
        worker.step()


class _FlakyHistory(HistoryBuffer):
    failures = 1

    def merge(self, batch, now):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("simulated merge failure")
        return super().merge(batch, now)


def test_worker_survives_exception_inside_a_cycle() -> None:
    clock = ManualClock(1.0)
    worker, ingest, _, output = _make_worker(history_cls=_FlakyHistory, clock=clock)
    worker.start()
    try:
        ingest.enqueue(RawSample(0.5, 1.0))
        assert _wait_for(lambda: worker.stats.errors == 1)
        assert worker.is_alive()

        ingest.enqueue_many([RawSample(0.9, 2.0), RawSample(0.95, 2.0)])
        assert _wait_for(lambda: output.qsize() > 0)
    finally:
        worker.stop(timeout=1.0)

    assert worker.stats.last_error == "RuntimeError: simulated merge failure"


def test_invalid_worker_settings_rejected() -> None:
    with pytest.raises(ValueError):
        _make_worker(idle_backoff_min_s=0.0)
    ingest = IngestQueue()
    with pytest.raises(ValueError):
        ResamplingWorker(ingest, HistoryBuffer(1.0), OutputStream(), PARAMS, latency_margin_s=-0.1)
