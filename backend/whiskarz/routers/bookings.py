from typing import Optional

from fastapi import APIRouter, Query

from whiskarz.models import (
    AdminBookingRequest,
    Booking,
    BookingAdmission,
    BookingConflictCheck,
    BookingRequest,
    BookingStatusUpdateRequest,
    Sitter,
    SitterAssignRequest,
)
from whiskarz.routers.http_errors import raise_scheduling_http_error
from whiskarz.services.admission import admission_controller
from whiskarz.services.booking_store import booking_store
from whiskarz.services.errors import SchedulingError

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


@router.post("", response_model=BookingAdmission, status_code=201)
def create_booking(request: BookingRequest):
    try:
        return admission_controller.admit_booking(request)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.post("/admin", response_model=BookingAdmission, status_code=201)
def create_booking_for_client(request: AdminBookingRequest):
    try:
        return admission_controller.admit_booking(request, admin_notes=request.admin_notes)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.get("/availability", response_model=BookingConflictCheck)
def check_booking_availability(
    start_date: str = Query(...),
    end_date: str = Query(...),
    start_time: Optional[str] = Query(default=None),
    end_time: Optional[str] = Query(default=None),
    sitter_id: Optional[str] = Query(default=None),
):
    try:
        return admission_controller.check_booking_conflicts(
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            sitter_id=_clean_optional(sitter_id),
        )
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.get("/available-sitters", response_model=list[Sitter])
def available_sitters(
    start_date: str = Query(...),
    end_date: str = Query(...),
    start_time: Optional[str] = Query(default=None),
    end_time: Optional[str] = Query(default=None),
    pet_types: Optional[str] = Query(default=None),
):
    requested = [item.strip() for item in pet_types.split(",") if item.strip()] if pet_types else None
    try:
        return admission_controller.find_available_sitters(
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            pet_types=requested,
        )
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.get("/client/{client_id}", response_model=list[Booking])
def list_client_bookings(client_id: str):
    return booking_store.list_for_client(client_id)


@router.get("/sitter/{sitter_id}", response_model=list[Booking])
def list_sitter_bookings(sitter_id: str):
    return booking_store.list_for_sitter(sitter_id)


@router.get("/{booking_id}", response_model=Booking)
def get_booking(booking_id: str):
    try:
        return booking_store.get_booking(booking_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.put("/{booking_id}/assign-sitter", response_model=Booking)
def assign_sitter(booking_id: str, request: SitterAssignRequest):
    try:
        return admission_controller.assign_sitter(booking_id, request.sitter_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.delete("/{booking_id}/assign-sitter", response_model=Booking)
def unassign_sitter(booking_id: str):
    try:
        return admission_controller.unassign_sitter(booking_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.put("/{booking_id}/status", response_model=Booking)
def update_booking_status(booking_id: str, update: BookingStatusUpdateRequest):
    try:
        return admission_controller.update_status(booking_id, update.status, update.note)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)
