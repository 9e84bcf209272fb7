from typing import Optional

from fastapi import APIRouter, Query

from whiskarz.models import (
    AvailabilityCheckResult,
    AvailabilitySettings,
    AvailabilitySettingsUpdate,
    AvailabilitySlot,
    AvailabilitySlotCreate,
    AvailabilitySlotUpdate,
    BulkDeleteRequest,
    BulkDeleteResult,
    SlotBulkResult,
    SlotUpdateItem,
)
from whiskarz.routers.http_errors import raise_scheduling_http_error
from whiskarz.services.admission import admission_controller
from whiskarz.services.errors import SchedulingError
from whiskarz.services.settings_store import settings_store
from whiskarz.services.slot_store import slot_store

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/settings/{sitter_id}", response_model=AvailabilitySettings)
def get_settings(sitter_id: str):
    return settings_store.get_settings(sitter_id)


@router.put("/settings/{sitter_id}", response_model=AvailabilitySettings)
def update_settings(sitter_id: str, update: AvailabilitySettingsUpdate):
    try:
        return settings_store.update_settings(sitter_id, update)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.get("/slots/{sitter_id}", response_model=list[AvailabilitySlot])
def list_slots(
    sitter_id: str,
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
):
    try:
        return slot_store.list_slots(sitter_id, start_date=start_date, end_date=end_date)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.post("/slots/{sitter_id}", response_model=AvailabilitySlot, status_code=201)
def create_slot(sitter_id: str, payload: AvailabilitySlotCreate):
    try:
        return slot_store.create_slot(sitter_id, payload)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.post("/slots/{sitter_id}/bulk", response_model=SlotBulkResult, status_code=201)
def create_slots(sitter_id: str, payloads: list[AvailabilitySlotCreate]):
    return slot_store.create_slots(sitter_id, payloads)


@router.put("/slots/{sitter_id}/bulk", response_model=SlotBulkResult)
def update_slots(sitter_id: str, items: list[SlotUpdateItem]):
    return slot_store.update_slots(sitter_id, items)


@router.post("/slots/{sitter_id}/bulk-delete", response_model=BulkDeleteResult)
def delete_slots(sitter_id: str, payload: BulkDeleteRequest):
    return BulkDeleteResult(deleted_count=slot_store.delete_slots(sitter_id, payload.slot_ids))


@router.get("/slots/{sitter_id}/{slot_id}", response_model=AvailabilitySlot)
def get_slot(sitter_id: str, slot_id: str):
    try:
        return slot_store.get_slot(sitter_id, slot_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.put("/slots/{sitter_id}/{slot_id}", response_model=AvailabilitySlot)
def update_slot(sitter_id: str, slot_id: str, update: AvailabilitySlotUpdate):
    try:
        return slot_store.update_slot(sitter_id, slot_id, update)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)


@router.delete("/slots/{sitter_id}/{slot_id}", response_model=dict)
def delete_slot(sitter_id: str, slot_id: str):
    try:
        slot_store.delete_slot(sitter_id, slot_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)
    return {"status": "deleted"}


@router.get("/check/{sitter_id}", response_model=AvailabilityCheckResult)
def check_availability(
    sitter_id: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
    start_time: Optional[str] = Query(default=None),
    end_time: Optional[str] = Query(default=None),
):
    try:
        return admission_controller.check_availability(
            sitter_id,
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
        )
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)
