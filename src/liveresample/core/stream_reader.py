"""
Read JSONL packet streams in a background thread and feed a
:class:`~.signal_hub.SignalHub`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from ..dataio.packets import PacketError, decode_packet
from .signal_hub import SignalHub

logger = logging.getLogger(__name__)


def reader_loop(
    stream: Iterable[str],
    hub: SignalHub,
    *,
    stop_event: Optional[threading.Event] = None,
    offset_scale: float = 1.0,
) -> int:
    """Decode one packet per line and submit its bursts to ``hub``.

    Stops when the input is exhausted or ``stop_event`` is set. Malformed
    lines are logged and skipped. Returns the number of samples submitted.
    """
    submitted = 0
    for raw_line in stream:
        if stop_event is not None and stop_event.is_set():
            break

        line = raw_line.strip()
        if not line:
            continue

        try:
            bursts = decode_packet(line, offset_scale=offset_scale)
        except PacketError as exc:
            logger.warning("Dropping malformed packet: %s (%s)", line, exc)
            continue
        except Exception:
            logger.exception("Failed to decode packet: %s", line)
            continue

        for burst in bursts:
            try:
                submitted += hub.submit(burst)
            except Exception:
                logger.exception("Failed to submit burst for signal %r", burst.signal_id)
    return submitted


@dataclass
class StreamReaderHandle:
    thread: threading.Thread
    stop_event: threading.Event
    hub: SignalHub

    def stop(self, *, join: bool = False, timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        if join:
            self.thread.join(timeout)

    def is_alive(self) -> bool:
        return self.thread.is_alive()


def start_reader(
    stream: Iterable[str],
    hub: SignalHub,
    *,
    offset_scale: float = 1.0,
    thread_name: Optional[str] = None,
) -> StreamReaderHandle:
    """
    Start a background thread that ingests JSON packet lines from *stream*.
    """
    stop_event = threading.Event()

    def _target() -> None:
        reader_loop(stream, hub, stop_event=stop_event, offset_scale=offset_scale)

    thread = threading.Thread(
        target=_target,
        name=thread_name or "LiveResampleStreamReader",
        daemon=True,
    )
    thread.start()
    return StreamReaderHandle(thread=thread, stop_event=stop_event, hub=hub)
