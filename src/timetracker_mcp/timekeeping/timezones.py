"""Timezone name resolution."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from .clock import utc_now

logger = logging.getLogger(__name__)

UNKNOWN_TIMEZONE = "UNKNOWN_TIMEZONE"
TIMEZONE_RESOLUTION_ERROR = "TIMEZONE_RESOLUTION_ERROR"

_LOCALTIME_PATH = Path("/etc/localtime")


@dataclass(slots=True)
class TimeZoneResolution:
    """Outcome of resolving a timezone name."""

    success: bool
    zone: tzinfo | None = None
    zone_id: str | None = None
    utc_offset: timedelta | None = None
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, zone: tzinfo, zone_id: str, utc_offset: timedelta) -> "TimeZoneResolution":
        return cls(success=True, zone=zone, zone_id=zone_id, utc_offset=utc_offset)

    @classmethod
    def error(cls, message: str, code: str = UNKNOWN_TIMEZONE) -> "TimeZoneResolution":
        return cls(success=False, error_message=message, error_code=code)


@lru_cache(maxsize=1)
def _zone_keys_by_lower() -> dict[str, str]:
    return {key.lower(): key for key in available_timezones()}


def _zone_key_from_path(path: Path) -> str | None:
    parts = path.parts
    if "zoneinfo" not in parts:
        return None
    key_parts = list(parts[parts.index("zoneinfo") + 1 :])
    if key_parts and key_parts[0] in {"posix", "right"}:
        key_parts = key_parts[1:]
    return "/".join(key_parts) or None


def _local_zone() -> tuple[tzinfo, str]:
    """Best-effort lookup of the host's IANA zone, falling back to its fixed offset."""

    candidates: list[str] = []
    env_key = os.environ.get("TZ", "").lstrip(":").strip()
    if env_key:
        candidates.append(env_key)
    try:
        path_key = _zone_key_from_path(_LOCALTIME_PATH.resolve())
    except OSError:
        path_key = None
    if path_key:
        candidates.append(path_key)

    for key in candidates:
        try:
            return ZoneInfo(key), key
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug("Ignoring unusable local zone candidate", extra={"zone": key})

    fallback = datetime.now().astimezone().tzinfo or timezone.utc
    return fallback, fallback.tzname(None) or "local"


def format_utc_offset(offset: timedelta) -> str:
    """Render an offset as ``+HH:MM`` / ``-HH:MM``."""

    total_minutes = int(offset.total_seconds()) // 60
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


class TimeZoneResolver:
    """Map ``local``, ``UTC`` or an IANA zone name to a concrete timezone."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utc_now

    def _ok(self, zone: tzinfo, zone_id: str) -> TimeZoneResolution:
        offset = self._clock().astimezone(zone).utcoffset() or timedelta(0)
        return TimeZoneResolution.ok(zone, zone_id, offset)

    def resolve(self, timezone_id: str | None) -> TimeZoneResolution:
        """Resolve a timezone name; blank or missing names mean ``local``."""

        name = (timezone_id or "").strip() or "local"
        lowered = name.lower()

        try:
            if lowered == "local":
                zone, zone_id = _local_zone()
                return self._ok(zone, zone_id)

            if lowered == "utc":
                return self._ok(timezone.utc, "UTC")

            key = _zone_keys_by_lower().get(lowered)
            if key is None:
                return TimeZoneResolution.error(
                    f"Unknown timezone: '{name}'. Use 'local', 'UTC', or a valid IANA timezone "
                    "name (e.g., 'America/New_York').",
                    UNKNOWN_TIMEZONE,
                )
            return self._ok(ZoneInfo(key), key)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            return TimeZoneResolution.error(
                f"Failed to resolve timezone '{name}': {exc}",
                TIMEZONE_RESOLUTION_ERROR,
            )


__all__ = [
    "TIMEZONE_RESOLUTION_ERROR",
    "UNKNOWN_TIMEZONE",
    "TimeZoneResolution",
    "TimeZoneResolver",
    "format_utc_offset",
]
