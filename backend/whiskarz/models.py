from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from whiskarz.services.time_utils import HHMM_PATTERN, hhmm_to_minutes


class Weekday(IntEnum):
    """Numbering matches ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        return self.name.capitalize()


def parse_weekday(value: Any) -> Weekday:
    if isinstance(value, Weekday):
        return value
    if isinstance(value, int):
        return Weekday(value)
    try:
        return Weekday[str(value).strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown weekday: {value!r}") from None


BookingStatus = Literal["pending", "confirmed", "assigned", "in_progress", "completed", "cancelled"]
SlotType = Literal["regular", "emergency", "holiday"]
PetType = Literal["Cat(s)", "Dog(s)", "Rabbit(s)", "Bird(s)", "Guinea pig(s)", "Ferret(s)", "Other"]
SitterStatus = Literal["active", "pending", "rejected"]


class DaySchedule(BaseModel):
    is_available: bool = False
    start_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def _check_window(self) -> "DaySchedule":
        if not self.is_available:
            return self
        if not self.start_time or not self.end_time:
            raise ValueError("An available day needs both start_time and end_time")
        if hhmm_to_minutes(self.start_time) >= hhmm_to_minutes(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class WeeklySchedule(BaseModel):
    """Seven day entries, index = ``Weekday`` value.

    Also accepts a mapping keyed by weekday name; omitted days are closed.
    """

    days: List[DaySchedule] = Field(min_length=7, max_length=7)

    @model_validator(mode="before")
    @classmethod
    def _from_named_days(cls, data: Any) -> Any:
        if isinstance(data, dict) and "days" not in data:
            days: List[Any] = [DaySchedule() for _ in Weekday]
            for key, entry in data.items():
                days[parse_weekday(key)] = entry
            return {"days": days}
        return data

    def day(self, weekday: Weekday) -> DaySchedule:
        return self.days[weekday]

    def with_days(self, updates: Dict[Weekday, DaySchedule]) -> "WeeklySchedule":
        days = list(self.days)
        for weekday, entry in updates.items():
            days[weekday] = entry
        return WeeklySchedule(days=days)


class HolidayRates(BaseModel):
    enabled: bool = False
    percentage: float = Field(default=0, ge=0, le=100)
    holidays: List[str] = Field(default_factory=list)


class WeekendRates(BaseModel):
    enabled: bool = False
    percentage: float = Field(default=0, ge=0, le=100)


class AvailabilitySettings(BaseModel):
    sitter_id: str
    weekly_schedule: WeeklySchedule
    max_daily_bookings: int = Field(default=5, ge=1, le=20)
    advance_notice_hours: int = Field(default=24, ge=1, le=168)
    travel_distance: int = Field(default=10, ge=1, le=100)
    holiday_rates: HolidayRates = Field(default_factory=HolidayRates)
    weekend_rates: WeekendRates = Field(default_factory=WeekendRates)
    unavailable_dates: List[str] = Field(default_factory=list)
    is_active: bool = True
    updated_at: Optional[str] = None

    @field_validator("unavailable_dates")
    @classmethod
    def _dedupe_dates(cls, value: List[str]) -> List[str]:
        return sorted(set(value))


class AvailabilitySettingsUpdate(BaseModel):
    weekly_schedule: Optional[Dict[str, DaySchedule]] = None
    max_daily_bookings: Optional[int] = Field(default=None, ge=1, le=20)
    advance_notice_hours: Optional[int] = Field(default=None, ge=1, le=168)
    travel_distance: Optional[int] = Field(default=None, ge=1, le=100)
    holiday_rates: Optional[HolidayRates] = None
    weekend_rates: Optional[WeekendRates] = None
    unavailable_dates: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator("weekly_schedule")
    @classmethod
    def _known_weekdays(cls, value: Optional[Dict[str, DaySchedule]]) -> Optional[Dict[str, DaySchedule]]:
        if value is not None:
            for key in value:
                parse_weekday(key)
        return value


class AvailabilitySlotCreate(BaseModel):
    date: str
    start_time: str
    end_time: str
    is_available: bool = True
    notes: str = ""
    slot_type: SlotType = "regular"
    custom_rate: Optional[float] = Field(default=None, ge=0)


class AvailabilitySlotUpdate(BaseModel):
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: Optional[bool] = None
    booking_id: Optional[str] = None
    notes: Optional[str] = None
    slot_type: Optional[SlotType] = None
    custom_rate: Optional[float] = Field(default=None, ge=0)


class AvailabilitySlot(BaseModel):
    id: str
    sitter_id: str
    date: str
    start_time: str
    end_time: str
    is_available: bool = True
    booking_id: Optional[str] = None
    notes: str = ""
    slot_type: SlotType = "regular"
    custom_rate: Optional[float] = None


class SlotUpdateItem(BaseModel):
    slot_id: str
    update: AvailabilitySlotUpdate


class BulkFailure(BaseModel):
    index: int
    item: Dict[str, Any] = Field(default_factory=dict)
    reason: str


class SlotBulkResult(BaseModel):
    succeeded: List[AvailabilitySlot] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)


class BulkDeleteRequest(BaseModel):
    slot_ids: List[str]


class BulkDeleteResult(BaseModel):
    deleted_count: int


class AvailabilityCheckResult(BaseModel):
    is_available: bool
    available_slots: List[AvailabilitySlot]
    settings: AvailabilitySettings
    conflicts: List[str]


class BookingRequest(BaseModel):
    client_id: str
    start_date: str
    end_date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    service_type: str = Field(min_length=1)
    number_of_pets: int = Field(ge=1)
    pet_types: List[PetType] = Field(min_length=1)
    notes: str = ""
    sitter_id: Optional[str] = None
    total_amount: Optional[float] = Field(default=None, ge=0)
    service_address: Optional[str] = None


class AdminBookingRequest(BookingRequest):
    admin_notes: str = ""


class BookingDraft(BaseModel):
    service_date: str
    start_at: datetime
    end_at: datetime
    service_type: str
    number_of_pets: int
    pet_types: List[str]
    notes: str = ""
    total_amount: float


class Booking(BaseModel):
    id: str
    client_id: str
    sitter_id: Optional[str] = None
    service_date: str
    start_at: datetime
    end_at: datetime
    service_type: str
    number_of_pets: int
    pet_types: List[str]
    status: BookingStatus = "pending"
    notes: str = ""
    admin_notes: str = ""
    total_amount: float
    service_address: Optional[str] = None
    created_at: Optional[str] = None


class BookingAdmission(BaseModel):
    booking_ids: List[str]
    total_amount: float
    bookings: List[Booking]


class BookingConflictCheck(BaseModel):
    is_available: bool
    conflicts: List[str] = Field(default_factory=list)
    conflicting_booking_ids: List[str] = Field(default_factory=list)


class SitterAssignRequest(BaseModel):
    sitter_id: str = Field(min_length=1)


class BookingStatusUpdateRequest(BaseModel):
    status: BookingStatus
    note: str = ""


class Sitter(BaseModel):
    id: str
    name: str
    email: str = ""
    status: SitterStatus = "active"
    pet_types_serviced: List[str] = Field(default_factory=list)


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    body: str
    category: Literal["booking", "availability", "system"] = "system"
    read: bool = False
    created_at: str
    deep_link: Optional[str] = None


class DeviceTokenRegisterRequest(BaseModel):
    user_id: str = Field(min_length=1)
    device_token: str = Field(min_length=1)
