"""Human-readable rendering of millisecond durations."""

from __future__ import annotations

_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60 * _MS_PER_SECOND
_MS_PER_HOUR = 60 * _MS_PER_MINUTE
_MS_PER_DAY = 24 * _MS_PER_HOUR


def _split(milliseconds: int) -> tuple[int, int, int, int]:
    days, remainder = divmod(milliseconds, _MS_PER_DAY)
    hours, remainder = divmod(remainder, _MS_PER_HOUR)
    minutes, remainder = divmod(remainder, _MS_PER_MINUTE)
    seconds = remainder // _MS_PER_SECOND
    return days, hours, minutes, seconds


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'}"


def format_duration(milliseconds: int) -> str:
    """Render a duration such as ``"2 minutes 34 seconds"``.

    Zero-valued components are omitted; anything shorter than one second
    becomes ``"less than 1 second"``.
    """

    if milliseconds < _MS_PER_SECOND:
        return "less than 1 second"

    days, hours, minutes, seconds = _split(milliseconds)
    parts = [
        _plural(value, unit)
        for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute"), (seconds, "second"))
        if value > 0
    ]
    return " ".join(parts)


def format_duration_detailed(milliseconds: int) -> str:
    """Like :func:`format_duration` but reports sub-second values in milliseconds."""

    if milliseconds < _MS_PER_SECOND:
        if milliseconds == 0:
            return "0 milliseconds"
        return _plural(milliseconds, "millisecond")
    return format_duration(milliseconds)


def format_duration_compact(milliseconds: int) -> str:
    """Render a duration such as ``"1h 30m"``."""

    if milliseconds < _MS_PER_SECOND:
        return "<1s"

    days, hours, minutes, seconds = _split(milliseconds)
    parts = [
        f"{value}{suffix}"
        for value, suffix in ((days, "d"), (hours, "h"), (minutes, "m"), (seconds, "s"))
        if value > 0
    ]
    return " ".join(parts)


__all__ = ["format_duration", "format_duration_compact", "format_duration_detailed"]
