"""Clock sources used for timestamps and durations."""

from __future__ import annotations

import time
from datetime import datetime, timezone

# time.monotonic_ns() reports nanoseconds.
TICKS_PER_SECOND = 1_000_000_000


def utc_now() -> datetime:
    """Return the current wall-clock time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def monotonic_ticks() -> int:
    """Return a monotonic tick sample, unaffected by wall-clock changes."""

    return time.monotonic_ns()


def ticks_to_ms(start_ticks: int, end_ticks: int) -> int:
    """Convert a tick interval to whole milliseconds, truncating."""

    return (end_ticks - start_ticks) * 1000 // TICKS_PER_SECOND


__all__ = ["TICKS_PER_SECOND", "monotonic_ticks", "ticks_to_ms", "utc_now"]
