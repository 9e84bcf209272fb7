import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from whiskarz.services.errors import SchedulingValidationError
from whiskarz.services.time_utils import (
    format_minutes,
    hhmm_to_minutes,
    local_day_bounds,
    local_minutes_to_instant,
    local_to_instant,
    parse_iso_date,
    parse_time_to_minutes,
    to_utc_iso,
    try_parse_time,
)

TORONTO = "America/Toronto"


def test_twelve_hour_input_parses():
    assert parse_time_to_minutes("5 PM", 540) == 1020
    assert parse_time_to_minutes("5:30pm", 540) == 1050
    assert parse_time_to_minutes("9 a.m.", 0) == 540


def test_twelve_hour_noon_and_midnight_rules():
    assert try_parse_time("12 PM") == 720
    assert try_parse_time("12 AM") == 0
    assert try_parse_time("12:30 am") == 30
    assert try_parse_time("11 pm") == 23 * 60


def test_bare_hour_is_24_hour():
    assert try_parse_time("7") == 420
    assert try_parse_time("17") == 1020


def test_unparseable_time_falls_back():
    assert parse_time_to_minutes("25:00", 540) == 540
    assert parse_time_to_minutes("noonish", 600) == 600
    assert parse_time_to_minutes("", 600) == 600
    assert parse_time_to_minutes(None, 600) == 600


def test_hhmm_round_trips_for_every_minute():
    for minutes in range(0, 24 * 60):
        assert try_parse_time(format_minutes(minutes)) == minutes


def test_strict_hhmm_rejects_twelve_hour_text():
    assert hhmm_to_minutes("09:05") == 545
    with pytest.raises(ValueError):
        hhmm_to_minutes("9 AM")


def test_local_to_instant_uses_business_timezone():
    summer = local_to_instant("2024-06-01", "09:00", TORONTO)
    winter = local_to_instant("2024-01-15", "09:00", TORONTO)
    assert to_utc_iso(summer) == "2024-06-01T13:00:00Z"
    assert to_utc_iso(winter) == "2024-01-15T14:00:00Z"


def test_local_to_instant_across_dst_change():
    before = local_to_instant("2024-03-09", "09:00", TORONTO)
    after = local_to_instant("2024-03-10", "09:00", TORONTO)
    assert (after - before).total_seconds() == 23 * 3600


def test_local_to_instant_rejects_bad_time():
    with pytest.raises(SchedulingValidationError):
        local_to_instant("2024-06-01", "9am", TORONTO)


def test_minutes_past_midnight_spill_to_next_day():
    instant = local_minutes_to_instant(date(2024, 6, 1), 25 * 60, TORONTO)
    assert to_utc_iso(instant) == "2024-06-02T05:00:00Z"


def test_parse_iso_date_normalizes_to_utc_date():
    assert parse_iso_date("2024-06-01") == date(2024, 6, 1)
    assert parse_iso_date("2024-06-01T23:30:00-04:00") == date(2024, 6, 2)
    assert parse_iso_date(date(2024, 6, 1)) == date(2024, 6, 1)


def test_parse_iso_date_rejects_garbage():
    with pytest.raises(SchedulingValidationError) as excinfo:
        parse_iso_date("next tuesday", field="start_date")
    assert "start_date" in str(excinfo.value)


def test_local_day_bounds_cover_whole_local_days():
    lower, upper = local_day_bounds(date(2024, 6, 1), date(2024, 6, 3), TORONTO)
    assert lower == "2024-06-01T04:00:00Z"
    assert upper == "2024-06-04T04:00:00Z"
