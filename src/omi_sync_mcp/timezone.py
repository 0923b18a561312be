"""Timezone detection and local date/time formatting."""

import time
import zoneinfo
from datetime import datetime, timezone, tzinfo

# Abbreviation → IANA timezone mapping (US-focused)
_TZ_ABBREV_MAP: dict[str, str] = {
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    "UTC": "UTC",
    "GMT": "UTC",
}

# UTC offset (hours) → IANA timezone mapping (fallback)
_TZ_OFFSET_MAP: dict[int, str] = {
    -8: "America/Los_Angeles",
    -7: "America/Denver",
    -6: "America/Chicago",
    -5: "America/New_York",
    -4: "America/New_York",
    0: "UTC",
}


def detect_local_timezone(now: datetime | None = None) -> tzinfo:
    """Detect the local timezone from the system.

    A mapped IANA zone is only used when its current offset matches the
    system clock, since abbreviations are ambiguous (CST is also China
    Standard Time). Otherwise falls back to the system's fixed UTC offset;
    set ``OMI_TIMEZONE`` to pin an IANA zone instead.
    """
    now = now or datetime.now().astimezone()
    system_offset = now.utcoffset()

    def matching(name: str) -> tzinfo | None:
        zone = zoneinfo.ZoneInfo(name)
        return zone if now.astimezone(zone).utcoffset() == system_offset else None

    try:
        if hasattr(time, "tzname") and time.tzname:
            current_tz = time.tzname[time.daylight]
            if current_tz in _TZ_ABBREV_MAP:
                zone = matching(_TZ_ABBREV_MAP[current_tz])
                if zone is not None:
                    return zone

        local_offset = time.timezone if not time.daylight else time.altzone
        hours_offset = -local_offset // 3600
        if hours_offset in _TZ_OFFSET_MAP:
            zone = matching(_TZ_OFFSET_MAP[hours_offset])
            if zone is not None:
                return zone
    except zoneinfo.ZoneInfoNotFoundError:
        pass

    return now.tzinfo if now.tzinfo is not None else timezone.utc


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the named IANA timezone, or the detected local one."""
    if name:
        return zoneinfo.ZoneInfo(name)
    return detect_local_timezone()


def convert_to_local(utc_dt: datetime, tz: tzinfo) -> datetime:
    """Convert a datetime (assumed UTC if naive) to the given timezone."""
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    return utc_dt.astimezone(tz)


def format_local_time(utc_dt: datetime, tz: tzinfo) -> str:
    """Format a datetime in the given local timezone for display."""
    return convert_to_local(utc_dt, tz).strftime("%Y-%m-%d %H:%M")


def local_date(utc_dt: datetime, tz: tzinfo) -> str:
    """Local calendar date as ``YYYY-MM-DD``."""
    return convert_to_local(utc_dt, tz).strftime("%Y-%m-%d")


def format_clock(utc_dt: datetime, tz: tzinfo) -> str:
    """Local wall-clock time as ``HH:MM AM/PM`` (zero-padded hour)."""
    return convert_to_local(utc_dt, tz).strftime("%I:%M %p")


def format_event_time(utc_dt: datetime, tz: tzinfo) -> str:
    """Human event time, e.g. ``Apr 1, 2025, 3:05 PM``."""
    local = convert_to_local(utc_dt, tz)
    hour = local.hour % 12 or 12
    return f"{local:%b} {local.day}, {local.year}, {hour}:{local:%M} {local:%p}"


def format_short_date(utc_dt: datetime, tz: tzinfo) -> str:
    """Short date, e.g. ``Apr 1, 2025``."""
    local = convert_to_local(utc_dt, tz)
    return f"{local:%b} {local.day}, {local.year}"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
