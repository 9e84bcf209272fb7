"""Booking admission.

Two separate decision paths share the same inputs:

* ``admit_booking`` / ``check_booking_conflicts`` only look for overlapping
  active bookings. Creation either persists every day of the request or
  nothing.
* ``check_availability`` is a diagnostic that accumulates every reason a
  range is unsuitable for a sitter (blackouts, closed weekdays, conflicts,
  lead time, daily capacity) without persisting anything.
"""

import logging
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

import pendulum
from pendulum import DateTime

from whiskarz.config import SchedulingConfig, settings as app_settings
from whiskarz.models import (
    AvailabilityCheckResult,
    AvailabilitySettings,
    Booking,
    BookingAdmission,
    BookingConflictCheck,
    BookingRequest,
    Sitter,
)
from whiskarz.services.booking_store import CONFLICT_MESSAGE, BookingStore, booking_store
from whiskarz.services.errors import SchedulingConflictError, SchedulingValidationError
from whiskarz.services.notification_store import NotificationStore, notification_store
from whiskarz.services.range_expander import DayWindow, RangeExpander
from whiskarz.services.settings_store import SettingsStore, settings_store
from whiskarz.services.sitter_directory import SitterDirectory, services_pet_types, sitter_directory
from whiskarz.services.slot_store import SlotStore, slot_store
from whiskarz.services.time_utils import MINUTES_PER_DAY, local_day_bounds
from whiskarz.services.weekly_schedule import unavailability_reason

logger = logging.getLogger(__name__)


def _intervals(windows: Sequence[DayWindow]) -> List[Tuple[DateTime, DateTime]]:
    return [(window.start_at, window.end_at) for window in windows]


class AdmissionController:
    def __init__(
        self,
        config: SchedulingConfig,
        settings: SettingsStore,
        slots: SlotStore,
        bookings: BookingStore,
        sitters: SitterDirectory,
        notifications: NotificationStore,
        clock: Optional[Callable[[], DateTime]] = None,
    ):
        self.config = config
        self.expander = RangeExpander(config)
        self.settings = settings
        self.slots = slots
        self.bookings = bookings
        self.sitters = sitters
        self.notifications = notifications
        self._clock = clock or (lambda: pendulum.now("UTC"))

    def _require_active_sitter(self, sitter_id: str) -> Sitter:
        sitter = self.sitters.get(sitter_id)
        if sitter.status != "active":
            raise SchedulingValidationError(f"Sitter {sitter_id} is not active")
        return sitter

    def _hours_until(self, instant: DateTime) -> float:
        return (instant - self._clock()).total_seconds() / 3600

    def _local_window(self, booking: Booking) -> Tuple[int, int]:
        start = pendulum.instance(booking.start_at).in_timezone(self.config.timezone)
        end = pendulum.instance(booking.end_at).in_timezone(self.config.timezone)
        start_minutes = start.hour * 60 + start.minute
        end_minutes = end.hour * 60 + end.minute
        if end.date() > start.date():
            end_minutes = MINUTES_PER_DAY
        return start_minutes, end_minutes

    def _consume_slots(self, bookings: Iterable[Booking]) -> None:
        for booking in bookings:
            if not booking.sitter_id:
                continue
            consumed = self.slots.consume_slots(
                booking.sitter_id, booking.service_date, self._local_window(booking), booking.id
            )
            if consumed:
                logger.info("Booking %s consumed slots %s", booking.id, ", ".join(consumed))

    def _notify(self, description: str, send: Callable[[], object]) -> None:
        # delivery problems never undo or fail an admission decision
        try:
            send()
        except Exception:
            logger.exception("Notification failed: %s", description)

    def check_booking_conflicts(
        self,
        start_date: str,
        end_date: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        sitter_id: Optional[str] = None,
    ) -> BookingConflictCheck:
        """Overlap check only; capacity, lead time and weekly hours are not consulted."""
        windows = self.expander.day_windows(start_date, end_date, start_time, end_time)
        clashes = self.bookings.find_conflicts(_intervals(windows), sitter_id)
        return BookingConflictCheck(
            is_available=not clashes,
            conflicts=[CONFLICT_MESSAGE] if clashes else [],
            conflicting_booking_ids=[booking.id for booking in clashes],
        )

    def admit_booking(self, request: BookingRequest, admin_notes: str = "") -> BookingAdmission:
        settings: Optional[AvailabilitySettings] = None
        if request.sitter_id:
            self._require_active_sitter(request.sitter_id)
            settings = self.settings.get_settings(request.sitter_id)

        drafts = self.expander.expand(request, settings)

        if self.config.enforce_advance_notice:
            notice_hours = (
                settings.advance_notice_hours if settings else self.config.settings_defaults.advance_notice_hours
            )
            if self._hours_until(pendulum.instance(drafts[0].start_at)) < notice_hours:
                raise SchedulingValidationError(f"Booking requires {notice_hours} hours advance notice")

        candidates = [
            Booking(
                id=f"bk_{uuid4().hex[:10]}",
                client_id=request.client_id,
                sitter_id=request.sitter_id,
                service_date=draft.service_date,
                start_at=draft.start_at,
                end_at=draft.end_at,
                service_type=draft.service_type,
                number_of_pets=draft.number_of_pets,
                pet_types=draft.pet_types,
                status="pending",
                notes=draft.notes,
                admin_notes=admin_notes,
                total_amount=draft.total_amount,
                service_address=request.service_address,
            )
            for draft in drafts
        ]
        try:
            created = self.bookings.insert_if_free(candidates, request.sitter_id)
        except SchedulingConflictError:
            logger.info(
                "Rejected booking request for client %s (%s to %s)",
                request.client_id,
                request.start_date,
                request.end_date,
            )
            raise

        self._consume_slots(created)
        total = float(sum(Decimal(str(booking.total_amount)) for booking in created))
        logger.info(
            "Admitted %d booking(s) for client %s, total %.2f",
            len(created),
            request.client_id,
            total,
        )
        self._notify(
            f"booking admitted for client {request.client_id}",
            lambda: self.notifications.notify_booking_admitted(created, total),
        )
        return BookingAdmission(
            booking_ids=[booking.id for booking in created],
            total_amount=total,
            bookings=created,
        )

    def check_availability(
        self,
        sitter_id: str,
        start_date: str,
        end_date: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> AvailabilityCheckResult:
        settings = self.settings.get_settings(sitter_id)
        windows = self.expander.day_windows(start_date, end_date, start_time, end_time)
        first_day, last_day = windows[0].day, windows[-1].day
        slots = self.slots.list_slots(sitter_id, first_day.isoformat(), last_day.isoformat())

        conflicts: List[str] = []
        available_slots = []
        if not settings.is_active:
            conflicts.append("Sitter is not accepting bookings")

        for window in windows:
            reason = unavailability_reason(settings, window.day)
            if reason:
                conflicts.append(reason)
                continue
            day = window.day.isoformat()
            available_slots.extend(slot for slot in slots if slot.date == day and slot.is_available)

        if self.bookings.find_conflicts(_intervals(windows), sitter_id):
            conflicts.append(CONFLICT_MESSAGE)

        if self._hours_until(windows[0].start_at) < settings.advance_notice_hours:
            conflicts.append(f"Booking requires {settings.advance_notice_hours} hours advance notice")

        lower, upper = local_day_bounds(first_day, last_day, self.config.timezone)
        if self.bookings.count_assigned_in_range(lower, upper, sitter_id) >= settings.max_daily_bookings:
            conflicts.append(f"Maximum daily bookings ({settings.max_daily_bookings}) reached")

        return AvailabilityCheckResult(
            is_available=not conflicts,
            available_slots=available_slots,
            settings=settings,
            conflicts=conflicts,
        )

    def find_available_sitters(
        self,
        start_date: str,
        end_date: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        pet_types: Optional[List[str]] = None,
    ) -> List[Sitter]:
        intervals = _intervals(self.expander.day_windows(start_date, end_date, start_time, end_time))
        available = []
        for sitter in self.sitters.list_active():
            if pet_types and not services_pet_types(sitter, pet_types):
                continue
            if self.bookings.find_conflicts(intervals, sitter.id):
                continue
            available.append(sitter)
        return available

    def assign_sitter(self, booking_id: str, sitter_id: str) -> Booking:
        self._require_active_sitter(sitter_id)
        previous = self.bookings.get_booking(booking_id)
        booking = self.bookings.assign_sitter(booking_id, sitter_id)
        if previous.sitter_id:
            self.slots.release_slots(booking_id)
        self._consume_slots([booking])
        logger.info("Assigned sitter %s to booking %s", sitter_id, booking_id)
        self._notify(
            f"sitter assigned to booking {booking_id}",
            lambda: self.notifications.notify_sitter_assigned(booking),
        )
        return booking

    def unassign_sitter(self, booking_id: str) -> Booking:
        booking = self.bookings.unassign_sitter(booking_id)
        self.slots.release_slots(booking_id)
        return booking

    def update_status(self, booking_id: str, status: str, note: str = "") -> Booking:
        booking = self.bookings.update_status(booking_id, status, note)
        if status == "cancelled":
            self.slots.release_slots(booking_id)
        return booking


admission_controller = AdmissionController(
    config=app_settings,
    settings=settings_store,
    slots=slot_store,
    bookings=booking_store,
    sitters=sitter_directory,
    notifications=notification_store,
)
