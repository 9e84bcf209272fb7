import os
import sys
from datetime import date

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from whiskarz.config import SettingsDefaults
from whiskarz.models import AvailabilitySettings, DaySchedule, Weekday, WeeklySchedule, parse_weekday
from whiskarz.services.weekly_schedule import (
    default_weekly_schedule,
    is_available,
    unavailability_reason,
    working_window,
)

SATURDAY = date(2024, 6, 1)
MONDAY = date(2024, 6, 3)


def _settings(**overrides) -> AvailabilitySettings:
    overrides.setdefault("weekly_schedule", default_weekly_schedule(SettingsDefaults()))
    return AvailabilitySettings(sitter_id="sitter_1", **overrides)


def test_default_schedule_opens_weekdays_only():
    settings = _settings()
    assert working_window(settings, MONDAY) == (540, 1020)
    assert working_window(settings, SATURDAY) is None
    assert is_available(settings, MONDAY) is True
    assert is_available(settings, SATURDAY) is False


def test_closed_day_ignores_stored_times():
    schedule = default_weekly_schedule(SettingsDefaults()).with_days(
        {Weekday.MONDAY: DaySchedule(is_available=False, start_time="08:00", end_time="10:00")}
    )
    settings = _settings(weekly_schedule=schedule)
    assert working_window(settings, MONDAY) is None
    assert unavailability_reason(settings, MONDAY) == "Monday is not available"


def test_blackout_date_overrides_open_weekday():
    settings = _settings(unavailable_dates=["2024-06-03"])
    assert is_available(settings, MONDAY) is False
    assert working_window(settings, MONDAY) is None
    assert unavailability_reason(settings, MONDAY) == "Date 2024-06-03 is marked as unavailable"
    assert unavailability_reason(settings, date(2024, 6, 4)) is None


def test_unavailable_dates_are_deduplicated():
    settings = _settings(unavailable_dates=["2024-06-04", "2024-06-03", "2024-06-04"])
    assert settings.unavailable_dates == ["2024-06-03", "2024-06-04"]


def test_available_day_requires_ordered_times():
    with pytest.raises(ValidationError):
        DaySchedule(is_available=True, start_time="10:00", end_time="09:00")
    with pytest.raises(ValidationError):
        DaySchedule(is_available=True, start_time="10:00")


def test_weekly_schedule_accepts_named_days():
    schedule = WeeklySchedule.model_validate(
        {"saturday": {"is_available": True, "start_time": "10:00", "end_time": "14:00"}}
    )
    assert schedule.day(Weekday.SATURDAY).is_available is True
    assert schedule.day(Weekday.MONDAY).is_available is False
    assert len(schedule.days) == 7


def test_parse_weekday_variants():
    assert parse_weekday("Sunday") is Weekday.SUNDAY
    assert parse_weekday(2) is Weekday.WEDNESDAY
    assert Weekday.THURSDAY.label == "Thursday"
    with pytest.raises(ValueError):
        parse_weekday("someday")
