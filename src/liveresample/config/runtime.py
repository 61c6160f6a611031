"""Runtime configuration for the resampling pipeline."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, MutableMapping, Optional

import yaml

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..core.kernel import KernelParams

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResamplerConfig:
    """
    Tuning knobs for reconstruction, latency, and memory.

    The defaults target a 100 Hz plot grid with a 50 Hz cutoff, a 60 ms
    kernel radius, and a 20 ms latency margin. Higher target rates or shorter
    kernels trade reconstruction fidelity for freshness.
    """

    target_rate_hz: float = 100.0
    cutoff_hz: float = 50.0
    kernel_half_width_s: float = 0.06
    retention_seconds: float = 5.0
    latency_margin_s: float = 0.02
    grid_origin_s: float = 0.0
    normalization: str = "signed"

    # Thread bridge sizing (0 = unbounded output stream)
    output_queue_size: int = 2048
    max_history_samples: Optional[int] = None
    max_backlog_seconds: Optional[float] = None

    # Worker scheduling
    idle_backoff_min_s: float = 0.001
    idle_backoff_max_s: float = 0.02
    stop_timeout_s: float = 1.0

    @property
    def grid_period_s(self) -> float:
        return 1.0 / float(self.target_rate_hz)

    def sanitized(self) -> ResamplerConfig:
        """Return a copy with derived limits applied."""
        rate = _positive(self.target_rate_hz, 100.0, minimum=1e-3)
        cutoff = _positive(self.cutoff_hz, rate / 2.0, minimum=1e-6)
        if cutoff > rate / 2.0:
            logger.warning("cutoff_hz %.3f exceeds Nyquist of the %.3f Hz grid; clamping", cutoff, rate)
            cutoff = rate / 2.0
        half_width = _positive(self.kernel_half_width_s, 0.06, minimum=1e-6)
        margin = max(0.0, _finite(self.latency_margin_s, 0.02))

        # Retention must cover the kernel support behind the emission horizon.
        min_retention = margin + half_width + 1.0 / rate
        retention = _positive(self.retention_seconds, 5.0, minimum=1e-6)
        if retention < min_retention:
            logger.warning("retention_seconds %.3f too short for the kernel; using %.3f", retention, min_retention)
            retention = min_retention

        from ..core.kernel import NORMALIZATION_MODES

        normalization = str(self.normalization or "signed").strip().lower()
        if normalization not in NORMALIZATION_MODES:
            logger.warning("Unknown normalization %r; falling back to 'signed'", self.normalization)
            normalization = "signed"

        backoff_min = _positive(self.idle_backoff_min_s, 0.001, minimum=1e-6)
        backoff_max = max(backoff_min, _positive(self.idle_backoff_max_s, 0.02, minimum=1e-6))

        max_samples = self.max_history_samples
        if max_samples is not None:
            max_samples = max(1, int(max_samples))
        max_backlog = self.max_backlog_seconds
        if max_backlog is not None:
            max_backlog = max(1.0 / rate, _finite(max_backlog, retention))

        return ResamplerConfig(
            target_rate_hz=rate,
            cutoff_hz=cutoff,
            kernel_half_width_s=half_width,
            retention_seconds=retention,
            latency_margin_s=margin,
            grid_origin_s=_finite(self.grid_origin_s, 0.0),
            normalization=normalization,
            output_queue_size=max(0, int(self.output_queue_size)),
            max_history_samples=max_samples,
            max_backlog_seconds=max_backlog,
            idle_backoff_min_s=backoff_min,
            idle_backoff_max_s=backoff_max,
            stop_timeout_s=max(0.01, _finite(self.stop_timeout_s, 1.0)),
        )

    def to_kernel_params(self) -> KernelParams:
        from ..core.kernel import KernelParams

        return KernelParams(
            target_rate_hz=float(self.target_rate_hz),
            cutoff_hz=float(self.cutoff_hz),
            half_width_s=float(self.kernel_half_width_s),
            normalization=self.normalization,
        )


def _finite(value: Any, fallback: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return float(fallback)
    if not math.isfinite(result):
        return float(fallback)
    return result


def _positive(value: Any, fallback: float, *, minimum: float) -> float:
    result = _finite(value, fallback)
    if result <= 0.0:
        result = float(fallback)
    return max(minimum, result)


def _recognized_fields() -> set[str]:
    """Return the dataclass field names accepted by :class:`ResamplerConfig`."""
    return {f.name for f in fields(ResamplerConfig)}


def _normalize_mapping(data: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Flatten a top-level ``resampler`` block into the surrounding mapping."""
    if "resampler" in data and isinstance(data["resampler"], Mapping):
        merged: MutableMapping[str, Any] = {}
        for key, value in data.items():
            if key == "resampler":
                merged.update(value)
            else:
                merged[key] = value
        return merged
    return dict(data)


def _apply(base: ResamplerConfig, data: Mapping[str, Any]) -> ResamplerConfig:
    known = _recognized_fields()
    payload = {key: data[key] for key in data.keys() & known}
    return replace(base, **payload).sanitized()


def config_from_mapping(data: Mapping[str, Any] | None) -> ResamplerConfig:
    """Build :class:`ResamplerConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return ResamplerConfig().sanitized()
    return _apply(ResamplerConfig(), _normalize_mapping(data))


def signal_overrides_from_mapping(
    data: Mapping[str, Any] | None,
    base: ResamplerConfig | None = None,
) -> Dict[str, ResamplerConfig]:
    """
    Build per-signal configs from a ``signals:`` block.

    Supported shape::

        resampler:
          target_rate_hz: 100
        signals:
          vibration:
            target_rate_hz: 500
            cutoff_hz: 250
            kernel_half_width_s: 0.02
    """
    if not data:
        return {}
    block = data.get("signals")
    if not isinstance(block, Mapping):
        return {}
    default = base or config_from_mapping(data)
    overrides: Dict[str, ResamplerConfig] = {}
    for signal_id, cfg in block.items():
        if not isinstance(cfg, Mapping):
            logger.warning("Ignoring non-mapping override for signal %r", signal_id)
            continue
        overrides[str(signal_id)] = _apply(default, cfg)
    return overrides


def _read_yaml(path: str | Path | None) -> Mapping[str, Any]:
    if path is None:
        return {}
    cfg_path = Path(path)
    if not cfg_path.exists():
        return {}
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return raw


def load_config(path: str | Path | None) -> ResamplerConfig:
    """
    Load configuration from ``path``.

    Missing files fall back to default :class:`ResamplerConfig`.
    """
    return config_from_mapping(_read_yaml(path))


def load_signal_overrides(path: str | Path | None) -> Dict[str, ResamplerConfig]:
    """Load the ``signals:`` block of ``path`` as per-signal configs."""
    return signal_overrides_from_mapping(_read_yaml(path))


def dump_config(cfg: ResamplerConfig, path: str | Path) -> None:
    """Persist ``cfg`` as a ``resampler:`` block in YAML."""
    cfg_path = Path(path)
    if cfg_path.parent and not cfg_path.parent.exists():
        cfg_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"resampler": {f.name: getattr(cfg, f.name) for f in fields(ResamplerConfig)}}
    with cfg_path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, default_flow_style=False, sort_keys=False)


__all__ = [
    "ResamplerConfig",
    "config_from_mapping",
    "dump_config",
    "load_config",
    "load_signal_overrides",
    "signal_overrides_from_mapping",
]
