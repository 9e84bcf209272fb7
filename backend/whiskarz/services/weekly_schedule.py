from datetime import date
from typing import Optional, Tuple

from whiskarz.config import SettingsDefaults
from whiskarz.models import AvailabilitySettings, DaySchedule, Weekday, WeeklySchedule
from whiskarz.services.time_utils import hhmm_to_minutes

WEEKEND = {Weekday.SATURDAY, Weekday.SUNDAY}


def weekday_of(day: date) -> Weekday:
    return Weekday(day.weekday())


def default_weekly_schedule(defaults: SettingsDefaults) -> WeeklySchedule:
    days = []
    for weekday in Weekday:
        if weekday in WEEKEND:
            days.append(DaySchedule(is_available=False))
        else:
            days.append(
                DaySchedule(is_available=True, start_time=defaults.weekday_start, end_time=defaults.weekday_end)
            )
    return WeeklySchedule(days=days)


def is_blacked_out(settings: AvailabilitySettings, day: date) -> bool:
    return day.isoformat() in settings.unavailable_dates


def is_available(settings: AvailabilitySettings, day: date) -> bool:
    if is_blacked_out(settings, day):
        return False
    return settings.weekly_schedule.day(weekday_of(day)).is_available


def working_window(settings: AvailabilitySettings, day: date) -> Optional[Tuple[int, int]]:
    """(start, end) minutes when ``day`` is open, else ``None``.

    Stored times on a closed weekday or a blackout date are ignored.
    """
    if is_blacked_out(settings, day):
        return None
    entry = settings.weekly_schedule.day(weekday_of(day))
    if not entry.is_available or not entry.start_time or not entry.end_time:
        return None
    return hhmm_to_minutes(entry.start_time), hhmm_to_minutes(entry.end_time)


def unavailability_reason(settings: AvailabilitySettings, day: date) -> Optional[str]:
    if is_blacked_out(settings, day):
        return f"Date {day.isoformat()} is marked as unavailable"
    weekday = weekday_of(day)
    if not settings.weekly_schedule.day(weekday).is_available:
        return f"{weekday.label} is not available"
    return None
