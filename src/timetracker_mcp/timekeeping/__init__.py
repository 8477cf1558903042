"""Wall-clock, monotonic tick, timezone and duration helpers."""

from .clock import TICKS_PER_SECOND, monotonic_ticks, ticks_to_ms, utc_now
from .formatting import format_duration, format_duration_compact, format_duration_detailed
from .timezones import TimeZoneResolution, TimeZoneResolver, format_utc_offset

__all__ = [
    "TICKS_PER_SECOND",
    "TimeZoneResolution",
    "TimeZoneResolver",
    "format_duration",
    "format_duration_compact",
    "format_duration_detailed",
    "format_utc_offset",
    "monotonic_ticks",
    "ticks_to_ms",
    "utc_now",
]
