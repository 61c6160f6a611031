"""
Decoding of sample packets delivered by the network transport.

Each packet is a JSON object with a base timestamp (Unix seconds) and one
entry per signal; every sample carries an offset relative to that base::

    {
      "timestamp": 1717000000.125,
      "signals": [
        {"id": "ch1", "name": "Voltage 1", "unit": "V", "min": 0, "max": 5,
         "color": "#4ECDC4",
         "samples": [{"t": 0.000, "value": 1.02}, {"t": 0.004, "value": 1.07}]}
      ]
    }

``decode_packet()`` turns that into :class:`SignalBurst` objects whose
samples carry absolute timestamps, ready for ``ResamplingPipeline.enqueue``.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Optional

from ..core.models import RawSample, SignalBurst, SignalInfo

logger = logging.getLogger(__name__)


class PacketError(ValueError):
    """Raised when a packet cannot be interpreted at all."""


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _parse_info(sig: Mapping[str, Any]) -> Optional[SignalInfo]:
    raw_id = sig.get("id")
    signal_id = "" if raw_id is None else str(raw_id).strip()
    name = str(sig.get("name") or "").strip()
    if not signal_id:
        # Signals without an id are keyed by their name.
        signal_id = name
    if not signal_id:
        return None
    return SignalInfo(
        id=signal_id,
        name=name or signal_id,
        unit=str(sig.get("unit") or "V"),
        min_value=_coerce_number(sig.get("min")),
        max_value=_coerce_number(sig.get("max")),
        color=str(sig.get("color") or "#6C757D"),
    )


def _parse_samples(
    raw_samples: Any,
    base_time: float,
    *,
    offset_scale: float,
    signal_id: str,
) -> list[RawSample]:
    if not isinstance(raw_samples, list):
        if raw_samples is not None:
            logger.warning("Signal %r has non-list samples: %r", signal_id, raw_samples)
        return []

    samples: list[RawSample] = []
    for entry in raw_samples:
        if not isinstance(entry, Mapping):
            logger.warning("Skipping malformed sample in %r: %r", signal_id, entry)
            continue
        offset = _coerce_number(entry.get("t"))
        value = _coerce_number(entry.get("value"))
        if offset is None or value is None:
            logger.warning("Skipping sample with missing t/value in %r: %r", signal_id, entry)
            continue
        timestamp = base_time + offset * offset_scale
        if not math.isfinite(timestamp):
            logger.warning("Skipping sample with out-of-range time in %r: %r", signal_id, entry)
            continue
        samples.append(RawSample(timestamp=timestamp, value=value))
    return samples


def decode_packet(
    packet: str | bytes | Mapping[str, Any],
    *,
    offset_scale: float = 1.0,
) -> list[SignalBurst]:
    """
    Decode one packet into per-signal bursts with absolute timestamps.

    Parameters
    ----------
    packet:
        Raw JSON text/bytes or an already parsed mapping.
    offset_scale:
        Multiplier converting sample offsets to seconds (``1e-3`` for
        millisecond offsets).

    Malformed signals and samples are logged and skipped; a packet that is
    not a JSON object raises :class:`PacketError`.
    """
    if isinstance(packet, (str, bytes, bytearray)):
        try:
            payload = json.loads(packet)
        except (ValueError, RecursionError) as exc:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors.
            raise PacketError(f"Invalid packet JSON: {exc}") from exc
    else:
        payload = packet

    if not isinstance(payload, Mapping):
        raise PacketError(f"Expected a JSON object, got {type(payload).__name__}")

    base_time = _coerce_number(payload.get("timestamp"))
    if base_time is None:
        logger.warning("Packet without usable timestamp; assuming 0.0")
        base_time = 0.0

    signals = payload.get("signals")
    if not isinstance(signals, list):
        logger.warning("Packet without 'signals' array")
        return []

    bursts: list[SignalBurst] = []
    for sig in signals:
        if not isinstance(sig, Mapping):
            logger.warning("Skipping non-object signal entry: %r", sig)
            continue
        info = _parse_info(sig)
        if info is None:
            logger.warning("Skipping signal without id or name: %r", sig)
            continue
        samples = _parse_samples(
            sig.get("samples"),
            base_time,
            offset_scale=offset_scale,
            signal_id=info.id,
        )
        bursts.append(SignalBurst(info=info, samples=samples))
    return bursts


def encode_packet(timestamp: float, bursts: list[SignalBurst]) -> str:
    """Serialize bursts back into the wire format (offsets relative to ``timestamp``)."""
    signals = []
    for burst in bursts:
        info = burst.info
        signals.append(
            {
                "id": info.id,
                "name": info.name,
                "unit": info.unit,
                "min": info.min_value,
                "max": info.max_value,
                "color": info.color,
                "samples": [{"t": s.timestamp - timestamp, "value": s.value} for s in burst.samples],
            }
        )
    return json.dumps({"timestamp": timestamp, "signals": signals})
