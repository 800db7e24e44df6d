from datetime import date, datetime, timezone

import pytest

from utils.time_utils import (
    as_utc,
    get_zone,
    hhmm_to_minutes,
    is_valid_timezone,
    is_within_quiet_hours,
    local_date_string,
    local_day_bounds_utc,
    minutes_in_timezone,
    resolve_wall_time,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ── Wall-clock resolution ─────────────────────────────────────────────────────

@pytest.mark.parametrize("day, wall_time, tz, expected", [
    (date(2026, 3, 14), "09:00", "UTC", utc(2026, 3, 14, 9, 0)),
    (date(2026, 1, 19), "09:00", "America/New_York", utc(2026, 1, 19, 14, 0)),
    (date(2026, 7, 19), "09:00", "America/New_York", utc(2026, 7, 19, 13, 0)),
    (date(2026, 1, 31), "20:00", "Asia/Tokyo", utc(2026, 1, 31, 11, 0)),
    (date(2026, 2, 1), "01:00", "America/New_York", utc(2026, 2, 1, 6, 0)),
    (date(2026, 5, 4), "09:00", "Asia/Kolkata", utc(2026, 5, 4, 3, 30)),
])
def test_resolve_wall_time(day, wall_time, tz, expected):
    assert resolve_wall_time(day, wall_time, tz) == expected


def test_resolve_wall_time_on_dst_start_day():
    # Clocks jump 02:00 -> 03:00 in New York on 2026-03-08; 09:00 is already EDT
    assert resolve_wall_time(date(2026, 3, 8), "09:00", "America/New_York") == utc(2026, 3, 8, 13, 0)


def test_resolve_wall_time_before_the_jump_east_of_utc():
    # Berlin moves to CEST at 01:00Z on 2026-03-29; 01:30 local is still CET (UTC+1)
    assert resolve_wall_time(date(2026, 3, 29), "01:30", "Europe/Berlin") == utc(2026, 3, 29, 0, 30)


def test_resolve_wall_time_inside_a_dst_gap():
    # 02:30 never happens in New York on 2026-03-08; the first-pass answer (03:30 EDT) is kept
    assert resolve_wall_time(date(2026, 3, 8), "02:30", "America/New_York") == utc(2026, 3, 8, 7, 30)


def test_resolve_wall_time_when_zone_is_a_day_ahead():
    # Auckland is UTC+13 in January: 08:00 local is still the previous UTC day
    assert resolve_wall_time(date(2026, 1, 10), "08:00", "Pacific/Auckland") == utc(2026, 1, 9, 19, 0)


def test_resolve_wall_time_unknown_zone_uses_utc():
    assert resolve_wall_time(date(2026, 4, 1), "10:30", "Mars/Olympus") == utc(2026, 4, 1, 10, 30)


# ── Zone helpers ──────────────────────────────────────────────────────────────

def test_is_valid_timezone():
    assert is_valid_timezone("Europe/Berlin")
    assert not is_valid_timezone("Not/AZone")


def test_get_zone_falls_back_to_utc():
    assert get_zone(None).key == "UTC"
    assert get_zone("Nowhere/Special").key == "UTC"
    assert get_zone("Asia/Tokyo").key == "Asia/Tokyo"


def test_as_utc_treats_naive_values_as_utc():
    assert as_utc(datetime(2026, 3, 1, 8, 0)) == utc(2026, 3, 1, 8, 0)
    assert as_utc(None) is None


def test_local_date_and_minutes():
    now = utc(2026, 3, 10, 3, 30)
    assert local_date_string(now, "UTC") == "2026-03-10"
    assert local_date_string(now, "America/New_York") == "2026-03-09"
    assert minutes_in_timezone(now, "America/New_York") == 23 * 60 + 30
    assert hhmm_to_minutes("07:45") == 465


def test_local_day_bounds_follow_the_users_calendar_date():
    start, end = local_day_bounds_utc(utc(2026, 3, 10, 3, 0), "America/New_York")
    assert start == utc(2026, 3, 9)
    assert end == utc(2026, 3, 10)


# ── Quiet hours ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("hour, minute, expected", [
    (22, 0, True),    # start is inside the window
    (23, 59, True),
    (3, 0, True),
    (7, 59, True),
    (8, 0, False),    # end is outside the window
    (12, 0, False),
    (21, 59, False),
])
def test_quiet_hours_wrapping_midnight(hour, minute, expected):
    now = utc(2026, 3, 10, hour, minute)
    assert is_within_quiet_hours(now, True, "22:00", "08:00") is expected


def test_quiet_hours_same_day_window():
    assert is_within_quiet_hours(utc(2026, 3, 10, 13, 0), True, "12:00", "14:00")
    assert not is_within_quiet_hours(utc(2026, 3, 10, 14, 0), True, "12:00", "14:00")


def test_quiet_hours_disabled_or_empty():
    now = utc(2026, 3, 10, 23, 0)
    assert not is_within_quiet_hours(now, False, "22:00", "08:00")
    assert not is_within_quiet_hours(now, True, "23:00", "23:00")


def test_quiet_hours_use_the_users_timezone():
    # 03:00 UTC is 22:00 the previous evening in New York (EST)
    now = utc(2026, 1, 15, 3, 0)
    assert is_within_quiet_hours(now, True, "22:00", "08:00", "America/New_York")
    assert not is_within_quiet_hours(now, True, "22:00", "08:00", "Asia/Tokyo")
