"""Opt-in timing instrumentation, enabled with ``LIVERESAMPLE_DEBUG=1``."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

DEBUG_LIVERESAMPLE = os.getenv("LIVERESAMPLE_DEBUG", "").lower() in {"1", "true", "yes", "on"}


def debug_enabled() -> bool:
    """Return True when lightweight instrumentation should run."""
    return DEBUG_LIVERESAMPLE


@contextmanager
def time_block(
    label: str,
    *,
    emitter: Callable[[str], None] | None = None,
    enabled: bool | None = None,
) -> Iterator[None]:
    """
    Context manager that reports elapsed time when debugging is enabled.

    The overhead is a couple of perf_counter() calls; nothing at all when
    disabled.
    """
    active = debug_enabled() if enabled is None else enabled
    if not active:
        yield
        return

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        target = emitter or logger.debug
        try:
            target(f"{label} took {elapsed_ms:.3f} ms")
        except Exception:
            logger.exception("Debug emitter failed for %s", label)
