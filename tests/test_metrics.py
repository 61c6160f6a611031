from __future__ import annotations

from liveresample.core.metrics import InputRateEstimator, WorkerStats
from liveresample.tools.debug import time_block


def test_input_rate_estimator_for_regular_samples() -> None:
    est = InputRateEstimator(window_size=100)
    est.feed_times(i * 0.002 for i in range(100))  # 500 Hz
    assert 490.0 < est.estimated_hz < 510.0

    est.reset()
    assert est.estimated_hz == 0.0


def test_worker_stats_snapshot() -> None:
    stats = WorkerStats()
    stats.record_cycle(0.002, merged=10, emitted=3, lag_s=0.015)
    stats.record_cycle(0.004, merged=5, emitted=2, lag_s=0.005)
    stats.record_idle()
    stats.record_skipped(7)
    stats.record_error(ValueError("bad"))

    snap = stats.as_dict()
    assert snap["cycles"] == 3
    assert snap["idle_cycles"] == 1
    assert snap["samples_merged"] == 15
    assert snap["points_emitted"] == 5
    assert snap["points_skipped"] == 7
    assert snap["errors"] == 1
    assert snap["last_error"] == "ValueError: bad"
    assert abs(snap["lag_ms"] - 5.0) < 1e-9
    assert abs(snap["avg_cycle_ms"] - 3.0) < 1e-9
    assert abs(snap["max_cycle_ms"] - 4.0) < 1e-9
    assert snap["process_cpu_percent"] >= 0.0

    stats.reset()
    assert stats.as_dict()["cycles"] == 0


def test_time_block_reports_only_when_enabled() -> None:
    messages: list[str] = []
    with time_block("disabled", emitter=messages.append, enabled=False):
        pass
    with time_block("cycle", emitter=messages.append, enabled=True):
        pass

    assert len(messages) == 1
    assert messages[0].startswith("cycle took ")


def test_time_block_survives_broken_emitter() -> None:
    def _broken(message: str) -> None:
        raise RuntimeError("no sink")

    with time_block("cycle", emitter=_broken, enabled=True):
        value = 1
    assert value == 1


def test_time_block_follows_debug_switch(monkeypatch) -> None:
    from liveresample.tools import debug

    messages: list[str] = []
    monkeypatch.setattr(debug, "DEBUG_LIVERESAMPLE", False)
    with time_block("quiet", emitter=messages.append):
        pass
    assert not debug.debug_enabled()

    monkeypatch.setattr(debug, "DEBUG_LIVERESAMPLE", True)
    with time_block("loud", emitter=messages.append):
        pass
    assert debug.debug_enabled()
    assert len(messages) == 1
    assert messages[0].startswith("loud took ")
