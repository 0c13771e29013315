"""Clock helpers.

Durations and cache ages use the monotonic clock; event timestamps use wall
clock milliseconds since the epoch so collectors can order them.
"""

from __future__ import annotations

import collections.abc as cabc
import time

Clock = cabc.Callable[[], float]
"""Zero-argument callable returning milliseconds."""


def epoch_ms() -> float:
    """Return wall clock milliseconds since the Unix epoch."""
    return time.time() * 1000.0


def monotonic_ms() -> float:
    """Return monotonic clock milliseconds, for durations and TTLs."""
    return time.monotonic() * 1000.0
