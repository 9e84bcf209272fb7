import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pendulum import DateTime

from whiskarz.config import SchedulingConfig
from whiskarz.models import AvailabilitySettings, BookingDraft, BookingRequest
from whiskarz.services.errors import SchedulingValidationError
from whiskarz.services.time_utils import (
    format_minutes,
    hhmm_to_minutes,
    iter_dates,
    local_minutes_to_instant,
    parse_iso_date,
    try_parse_time,
)
from whiskarz.services.weekly_schedule import WEEKEND, weekday_of

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class DayWindow:
    day: date
    start_minutes: int
    end_minutes: int
    start_at: DateTime
    end_at: DateTime

    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minutes)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minutes)


class RangeExpander:
    """Turns an inclusive [start_date, end_date] request into one window per day."""

    def __init__(self, config: SchedulingConfig):
        self.config = config

    def resolve_date_range(self, start_date: str, end_date: str) -> tuple:
        start = parse_iso_date(start_date, field="start_date")
        end = parse_iso_date(end_date, field="end_date")
        if end < start:
            raise SchedulingValidationError("end_date must not be before start_date")
        return start, end

    def resolve_times(self, start_time: Optional[str], end_time: Optional[str]) -> tuple:
        default_start = hhmm_to_minutes(self.config.default_start_time)
        default_end = hhmm_to_minutes(self.config.default_end_time)

        start = try_parse_time(start_time)
        if start is None:
            if start_time:
                logger.warning("Unrecognized start time %r; using %s", start_time, self.config.default_start_time)
            start = default_start
        end = try_parse_time(end_time)
        if end is None:
            if end_time:
                logger.warning("Unrecognized end time %r; using %s", end_time, self.config.default_end_time)
            end = default_end

        if end <= start:
            # lenient: widen to the minimum window instead of rejecting
            end = start + self.config.min_window_minutes
        return start, end

    def day_windows(
        self,
        start_date: str,
        end_date: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> List[DayWindow]:
        start_day, end_day = self.resolve_date_range(start_date, end_date)
        start_minutes, end_minutes = self.resolve_times(start_time, end_time)
        windows = []
        for day in iter_dates(start_day, end_day):
            windows.append(
                DayWindow(
                    day=day,
                    start_minutes=start_minutes,
                    end_minutes=end_minutes,
                    start_at=local_minutes_to_instant(day, start_minutes, self.config.timezone),
                    end_at=local_minutes_to_instant(day, end_minutes, self.config.timezone),
                )
            )
        return windows

    def day_cost(self, day: date, base: Decimal, settings: Optional[AvailabilitySettings]) -> Decimal:
        if settings is None:
            return base
        percentage = 0.0
        if settings.holiday_rates.enabled and day.isoformat() in settings.holiday_rates.holidays:
            percentage = settings.holiday_rates.percentage
        elif settings.weekend_rates.enabled and weekday_of(day) in WEEKEND:
            percentage = settings.weekend_rates.percentage
        uplift = Decimal(str(percentage)) / Decimal(100)
        return (base * (Decimal(1) + uplift)).quantize(CENT, rounding=ROUND_HALF_UP)

    def day_costs(
        self,
        days: List[date],
        total_amount: Optional[float],
        settings: Optional[AvailabilitySettings] = None,
    ) -> List[Decimal]:
        if total_amount is not None:
            # agreed total split evenly; the last day absorbs the rounding remainder
            total = Decimal(str(total_amount)).quantize(CENT, rounding=ROUND_HALF_UP)
            share = (total / len(days)).quantize(CENT, rounding=ROUND_HALF_UP)
            costs = [share] * len(days)
            costs[-1] = total - share * (len(days) - 1)
            return costs
        rate = Decimal(str(self.config.daily_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
        return [self.day_cost(day, rate, settings) for day in days]

    def expand(
        self,
        request: BookingRequest,
        settings: Optional[AvailabilitySettings] = None,
    ) -> List[BookingDraft]:
        """One independent draft per calendar day, in date order."""
        windows = self.day_windows(request.start_date, request.end_date, request.start_time, request.end_time)
        costs = self.day_costs([window.day for window in windows], request.total_amount, settings)
        return [
            BookingDraft(
                service_date=window.day.isoformat(),
                start_at=window.start_at,
                end_at=window.end_at,
                service_type=request.service_type,
                number_of_pets=request.number_of_pets,
                pet_types=list(request.pet_types),
                notes=request.notes,
                total_amount=float(cost),
            )
            for window, cost in zip(windows, costs)
        ]
