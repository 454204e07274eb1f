"""Tests for channel_bot.utils helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from channel_bot.utils import (
    db_timestamp,
    fmt_age,
    fmt_duration,
    parse_hm,
    parse_lang_pair,
    parse_timestamp,
)


class TestTimestamps:

    def test_db_timestamp_converts_to_utc(self):
        dt = datetime(2026, 1, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        assert db_timestamp(dt) == "2026-01-01 12:30:00"

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-01-01 12:30:00") == datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
        assert parse_timestamp(None) is None
        assert parse_timestamp("garbage") is None


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (0, "0s"),
        (-5, "0s"),
        (59, "59s"),
        (3600, "1h"),
        (90061, "1d 1h 1m 1s"),
        (timedelta(minutes=5, seconds=3), "5m 3s"),
    ])
    def test_fmt_duration(self, value, expected: str):
        assert fmt_duration(value) == expected

    def test_fmt_age_days(self):
        now = datetime(2026, 1, 31, tzinfo=timezone.utc)
        assert fmt_age(datetime(2026, 1, 1, tzinfo=timezone.utc), now) == "30 days"

    def test_fmt_age_years(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert fmt_age(datetime(2024, 1, 1, tzinfo=timezone.utc), now) == "2.00 years"


class TestParsing:

    def test_parse_hm(self):
        assert parse_hm("(1h,30m)") == timedelta(hours=1, minutes=30)
        assert parse_hm("(0h,0m)") == timedelta(0)

    @pytest.mark.parametrize("bad", ["1h30m", "(1h)", "(h,m)", "(1h, 30m)"])
    def test_parse_hm_rejects(self, bad: str):
        assert parse_hm(bad) is None

    def test_parse_lang_pair(self):
        assert parse_lang_pair("(en,de)") == ("en", "de")
        assert parse_lang_pair("(pt-br,en)") == ("pt-br", "en")
        assert parse_lang_pair("en,de") is None
