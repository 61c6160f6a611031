"""Shared dataclasses for raw samples, grid points, and signal metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True, slots=True)
class RawSample:
    """One irregularly timed sensor reading (timestamp in seconds)."""

    timestamp: float
    value: float


@dataclass(frozen=True, slots=True)
class ResampledPoint:
    """
    Reconstructed value on the output grid.

    ``timestamp`` is always ``grid_origin + index * grid_period``.
    """

    timestamp: float
    value: float
    index: int


@dataclass(slots=True)
class SignalInfo:
    """Descriptive metadata carried alongside each signal in a packet."""

    id: str
    name: str = ""
    unit: str = "V"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    color: str = "#6C757D"

    def update_from(self, other: "SignalInfo") -> None:
        """Copy the descriptive fields of ``other`` (ids must match)."""
        if other.id != self.id:
            raise ValueError(f"Cannot merge metadata of {other.id!r} into {self.id!r}")
        self.name = other.name or self.name
        self.unit = other.unit or self.unit
        if other.min_value is not None:
            self.min_value = other.min_value
        if other.max_value is not None:
            self.max_value = other.max_value
        self.color = other.color or self.color


@dataclass(slots=True)
class SignalBurst:
    """Samples of a single signal decoded from one packet."""

    info: SignalInfo
    samples: list[RawSample] = field(default_factory=list)

    @property
    def signal_id(self) -> str:
        return self.info.id

    def __len__(self) -> int:
        return len(self.samples)
