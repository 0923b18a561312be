"""Tests for local timezone detection and formatting."""

import time
import zoneinfo
from datetime import datetime, timedelta, timezone

import pytest

from omi_sync_mcp.timezone import detect_local_timezone, format_clock, local_date, resolve_timezone

UTC = timezone.utc


def _system(monkeypatch, names: tuple[str, str], daylight: int, offset_hours: int) -> None:
    monkeypatch.setattr(time, "tzname", names)
    monkeypatch.setattr(time, "daylight", daylight)
    monkeypatch.setattr(time, "timezone", -offset_hours * 3600)
    monkeypatch.setattr(time, "altzone", -offset_hours * 3600)


class TestDetectLocalTimezone:
    def test_us_central(self, monkeypatch):
        _system(monkeypatch, ("CST", "CDT"), 1, -5)
        now = datetime(2025, 7, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))

        tz = detect_local_timezone(now)

        assert tz == zoneinfo.ZoneInfo("America/Chicago")

    def test_china_standard_time_is_not_chicago(self, monkeypatch):
        _system(monkeypatch, ("CST", "CST"), 0, 8)
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone(timedelta(hours=8)))

        tz = detect_local_timezone(now)

        assert tz.utcoffset(None) == timedelta(hours=8)
        assert local_date(datetime(2025, 1, 15, 20, 0, tzinfo=UTC), tz) == "2025-01-16"

    def test_unknown_abbreviation_uses_offset_map(self, monkeypatch):
        _system(monkeypatch, ("XYZ", "XYZ"), 0, 0)
        now = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

        assert detect_local_timezone(now) == zoneinfo.ZoneInfo("UTC")


class TestResolveTimezone:
    def test_named_zone_wins(self):
        assert resolve_timezone("Asia/Shanghai") == zoneinfo.ZoneInfo("Asia/Shanghai")

    def test_unknown_name(self):
        with pytest.raises(zoneinfo.ZoneInfoNotFoundError):
            resolve_timezone("Mars/Olympus_Mons")


class TestFormatting:
    def test_clock_is_zero_padded(self):
        assert format_clock(datetime(2025, 4, 1, 9, 5, tzinfo=UTC), UTC) == "09:05 AM"

    def test_naive_is_treated_as_utc(self):
        tz = zoneinfo.ZoneInfo("America/New_York")
        assert local_date(datetime(2025, 4, 2, 2, 0), tz) == "2025-04-01"
