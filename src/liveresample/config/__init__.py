"""Configuration objects and helpers for liveresample.

Pipelines are configured from YAML files with a ``resampler:`` block for the
defaults and an optional ``signals:`` block of per-signal overrides (different
sensors may need different target rates or kernel widths). The resulting
typed dataclass (see :mod:`runtime`) is what the pipeline factory consumes.
"""

from .runtime import (
    ResamplerConfig,
    config_from_mapping,
    dump_config,
    load_config,
    load_signal_overrides,
    signal_overrides_from_mapping,
)

__all__ = [
    "ResamplerConfig",
    "config_from_mapping",
    "dump_config",
    "load_config",
    "load_signal_overrides",
    "signal_overrides_from_mapping",
]
