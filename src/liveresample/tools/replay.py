#!/usr/bin/env python3
"""
Replay a captured packet stream through the resampling engine.

The capture is a JSONL file with one transport packet per line (see
:mod:`liveresample.dataio.packets`). Packets are fed in order while a
:class:`~liveresample.core.clock.ManualClock` follows their timestamps, so the
output matches what a live session would have produced, minus the waiting.

Resampled points can be written to CSV (``--out``) and/or plotted against
the raw samples with Matplotlib (``--plot``). ``--demo SECONDS`` replaces the
capture with a synthetic, irregularly sampled sine so the tool can be tried
without hardware.
"""

from __future__ import annotations

import argparse
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence

import numpy as np

from ..config import ResamplerConfig, load_config, load_signal_overrides
from ..core.clock import ManualClock
from ..core.models import RawSample, ResampledPoint, SignalBurst, SignalInfo
from ..core.signal_hub import SignalHub
from ..dataio.csv_writer import write_points
from ..dataio.packets import PacketError, decode_packet, encode_packet

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Everything a replay produced, keyed by signal id."""

    points: Dict[str, List[ResampledPoint]] = field(default_factory=lambda: defaultdict(list))
    raw: Dict[str, List[RawSample]] = field(default_factory=lambda: defaultdict(list))
    packets: int = 0
    skipped_packets: int = 0

    def extend_points(self, batch: Dict[str, List[ResampledPoint]]) -> None:
        for signal_id, points in batch.items():
            if points:
                self.points[signal_id].extend(points)


def synthetic_packets(
    duration_s: float,
    *,
    start_time: float = 0.0,
    packet_interval_s: float = 0.05,
    sample_rate_hz: float = 500.0,
    jitter: float = 0.3,
    freq_hz: float = 2.0,
    seed: int | None = None,
) -> Iterator[str]:
    """
    Yield JSON packet lines carrying an irregularly sampled sine wave.

    Sample spacing is ``1/sample_rate_hz`` perturbed by up to ``jitter``
    of a period, grouped into packets every ``packet_interval_s``.
    """
    rand = np.random.default_rng(seed)
    period = 1.0 / float(sample_rate_hz)
    info = SignalInfo(id="demo", name="Demo sine", unit="V", min_value=-1.0, max_value=1.0, color="#4ECDC4")
    t = start_time
    packet_start = start_time
    end = start_time + float(duration_s)
    while packet_start < end:
        packet_end = packet_start + packet_interval_s
        samples: list[RawSample] = []
        while t < packet_end and t < end:
            value = float(np.sin(2.0 * np.pi * freq_hz * (t - start_time)))
            samples.append(RawSample(timestamp=t, value=value))
            t += period * (1.0 + jitter * float(rand.uniform(-1.0, 1.0)))
        if samples:
            yield encode_packet(packet_start, [SignalBurst(info=info, samples=samples)])
        packet_start = packet_end


def replay(
    lines: Iterable[str],
    hub: SignalHub,
    clock: ManualClock,
    *,
    offset_scale: float = 1.0,
    flush: bool = True,
) -> ReplayResult:
    """
    Feed ``lines`` through ``hub`` one packet at a time.

    The clock is moved to the newest sample of each packet before the
    pipelines run a cycle, mimicking a packet arriving right after its last
    sample was taken. With ``flush`` the clock is advanced past the final
    sample so trailing grid points are emitted as well.
    """
    result = ReplayResult()
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        try:
            bursts = decode_packet(line, offset_scale=offset_scale)
        except PacketError as exc:
            logger.warning("Skipping malformed packet: %s", exc)
            result.skipped_packets += 1
            continue
        result.packets += 1

        newest = max((s.timestamp for b in bursts for s in b.samples), default=None)
        if newest is not None:
            clock.set(newest)
        for burst in bursts:
            hub.submit(burst)
            result.raw[burst.signal_id].extend(burst.samples)
        hub.step_all()
        result.extend_points(hub.drain_all())

    if flush:
        tail = 0.0
        for signal_id in hub.signal_ids():
            cfg = hub.config_for(signal_id)
            tail = max(tail, cfg.latency_margin_s + cfg.grid_period_s)
        clock.advance(tail)
        hub.flush_all()
        result.extend_points(hub.drain_all())
    return result


def plot_result(result: ReplayResult, *, title: str = "liveresample replay") -> None:
    """Show raw samples and reconstructed grid points, one subplot per signal."""
    import matplotlib.pyplot as plt

    signal_ids = sorted(set(result.raw) | set(result.points))
    if not signal_ids:
        logger.warning("Nothing to plot")
        return

    fig, axes = plt.subplots(len(signal_ids), 1, sharex=True, squeeze=False, figsize=(10, 3 * len(signal_ids)))
    for ax, signal_id in zip(axes[:, 0], signal_ids):
        raw = result.raw.get(signal_id, [])
        points = result.points.get(signal_id, [])
        if raw:
            ax.plot([s.timestamp for s in raw], [s.value for s in raw], ".", ms=2, alpha=0.5, label="raw")
        if points:
            ax.plot([p.timestamp for p in points], [p.value for p in points], "-", lw=1.2, label="resampled")
        ax.set_ylabel(signal_id)
        ax.grid(True)
        ax.legend(loc="upper right")
    axes[-1, 0].set_xlabel("time [s]")
    fig.canvas.manager.set_window_title(title)
    fig.tight_layout()
    plt.show()


# --------------------------------------------------------------------------- # CLI
def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replay a JSONL packet capture through the liveresample engine."
    )
    parser.add_argument("capture", nargs="?", type=Path, help="JSONL file with one packet per line")
    parser.add_argument("--config", type=Path, help="YAML file with resampler settings")
    parser.add_argument("-o", "--out", type=Path, help="Write resampled points to this CSV file")
    parser.add_argument("--plot", action="store_true", help="Plot raw vs resampled data with Matplotlib")
    parser.add_argument(
        "--demo",
        type=float,
        metavar="SECONDS",
        help="Replay a synthetic irregular sine of this duration instead of a capture",
    )
    parser.add_argument(
        "--offset-scale",
        type=float,
        default=1.0,
        help="Multiplier converting sample offsets to seconds (default: 1.0)",
    )
    parser.add_argument("--target-rate", type=float, help="Override target_rate_hz")
    parser.add_argument("--cutoff", type=float, help="Override cutoff_hz")
    parser.add_argument("--half-width", type=float, help="Override kernel_half_width_s")
    parser.add_argument("--margin", type=float, help="Override latency_margin_s")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")
    return parser


def _resolve_config(args: argparse.Namespace) -> ResamplerConfig:
    cfg = load_config(args.config) if args.config else ResamplerConfig()
    if args.target_rate is not None:
        cfg.target_rate_hz = float(args.target_rate)
        if args.cutoff is None:
            cfg.cutoff_hz = cfg.target_rate_hz / 2.0
    if args.cutoff is not None:
        cfg.cutoff_hz = float(args.cutoff)
    if args.half_width is not None:
        cfg.kernel_half_width_s = float(args.half_width)
    if args.margin is not None:
        cfg.latency_margin_s = float(args.margin)
    # Replays collect everything, so never evict output.
    cfg.output_queue_size = 0
    return cfg.sanitized()


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING - 10 * min(2, args.verbose)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.capture is None and args.demo is None:
        parser.error("Provide a capture file or --demo SECONDS")
    if args.capture is not None and not args.capture.exists():
        parser.error(f"Capture file not found: {args.capture}")

    cfg = _resolve_config(args)
    overrides = {
        signal_id: replace(override, output_queue_size=0).sanitized()
        for signal_id, override in (load_signal_overrides(args.config) if args.config else {}).items()
    }
    clock = ManualClock()
    hub = SignalHub(cfg, overrides=overrides, clock=clock, autostart=False)

    if args.demo is not None:
        result = replay(synthetic_packets(args.demo), hub, clock, offset_scale=args.offset_scale)
    else:
        with args.capture.open("r", encoding="utf-8") as fh:
            result = replay(fh, hub, clock, offset_scale=args.offset_scale)

    total = sum(len(points) for points in result.points.values())
    logger.info(
        "Replayed %d packets (%d skipped) into %d points across %d signals",
        result.packets,
        result.skipped_packets,
        total,
        len(result.points),
    )

    if args.out is not None:
        rows = write_points(args.out, result.points)
        print(f"[INFO] Wrote {rows} points to {args.out}")
    else:
        for signal_id in sorted(result.points):
            print(f"{signal_id}: {len(result.points[signal_id])} points")

    if args.plot:
        try:
            plot_result(result)
        except KeyboardInterrupt:
            return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
