import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from whiskarz.models import AvailabilitySlot, AvailabilitySlotCreate, AvailabilitySlotUpdate, SlotUpdateItem
from whiskarz.services.errors import (
    SchedulingConflictError,
    SchedulingNotFoundError,
    SchedulingValidationError,
)
from whiskarz.services.slot_store import SlotStore, find_overlap, overlaps


def _store(tmp_path) -> SlotStore:
    return SlotStore(db_path=str(tmp_path / "slots.sqlite3"))


def _slot(start_time: str, end_time: str, slot_date: str = "2024-06-01") -> AvailabilitySlotCreate:
    return AvailabilitySlotCreate(date=slot_date, start_time=start_time, end_time=end_time)


def test_overlap_is_symmetric_and_half_open():
    pairs = [((540, 600), (600, 660)), ((540, 720), (660, 780)), ((540, 1020), (600, 660)), ((0, 60), (120, 180))]
    for a, b in pairs:
        assert overlaps(a, b) == overlaps(b, a)
    assert overlaps((540, 600), (600, 660)) is False
    assert overlaps((540, 720), (660, 780)) is True
    assert overlaps((540, 1020), (600, 660)) is True


def test_find_overlap_on_sorted_slots():
    slots = [
        AvailabilitySlot(id="a", sitter_id="s", date="2024-06-01", start_time="08:00", end_time="09:00"),
        AvailabilitySlot(id="b", sitter_id="s", date="2024-06-01", start_time="10:00", end_time="12:00"),
        AvailabilitySlot(id="c", sitter_id="s", date="2024-06-01", start_time="14:00", end_time="15:00"),
    ]
    assert find_overlap(slots, (11 * 60, 13 * 60)).id == "b"
    assert find_overlap(slots, (12 * 60, 14 * 60)) is None
    assert find_overlap(slots, (7 * 60, 8 * 60)) is None
    assert find_overlap(slots, (11 * 60, 13 * 60), ignore_slot_id="b") is None


def test_overlapping_slot_is_rejected_touching_slot_is_accepted(tmp_path):
    store = _store(tmp_path)
    store.create_slot("sitter_s", _slot("09:00", "12:00"))

    with pytest.raises(SchedulingConflictError) as excinfo:
        store.create_slot("sitter_s", _slot("11:00", "13:00"))
    assert "09:00-12:00" in str(excinfo.value)

    accepted = store.create_slot("sitter_s", _slot("12:00", "13:00"))
    assert accepted.start_time == "12:00"
    assert len(store.list_slots("sitter_s")) == 2


def test_store_find_overlap_by_sitter_and_date(tmp_path):
    store = _store(tmp_path)
    slot = store.create_slot("sitter_s", _slot("09:00", "12:00"))
    assert store.find_overlap("sitter_s", "2024-06-01", (660, 780)).id == slot.id
    assert store.find_overlap("sitter_s", "2024-06-01", (720, 780)) is None
    assert store.find_overlap("sitter_s", "2024-06-02", (660, 780)) is None
    assert store.find_overlap("sitter_t", "2024-06-01", (660, 780)) is None


def test_overlap_is_scoped_to_sitter_and_date(tmp_path):
    store = _store(tmp_path)
    store.create_slot("sitter_s", _slot("09:00", "12:00"))
    store.create_slot("sitter_t", _slot("09:00", "12:00"))
    store.create_slot("sitter_s", _slot("09:00", "12:00", slot_date="2024-06-02"))
    assert len(store.list_slots("sitter_s")) == 2


def test_slot_window_must_be_ordered(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(SchedulingValidationError):
        store.create_slot("sitter_s", _slot("12:00", "09:00"))
    with pytest.raises(SchedulingValidationError):
        store.create_slot("sitter_s", _slot("9am", "10:00"))


def test_bulk_create_keeps_going_after_a_failure(tmp_path):
    store = _store(tmp_path)
    result = store.create_slots(
        "sitter_s",
        [_slot("08:00", "09:00"), _slot("08:30", "09:30"), _slot("10:00", "11:00")],
    )
    assert [slot.start_time for slot in result.succeeded] == ["08:00", "10:00"]
    assert len(result.failed) == 1
    assert result.failed[0].index == 1
    assert result.failed[0].item["start_time"] == "08:30"
    assert "overlaps" in result.failed[0].reason


def test_list_slots_sorted_and_filtered_by_range(tmp_path):
    store = _store(tmp_path)
    store.create_slot("sitter_s", _slot("13:00", "14:00", slot_date="2024-06-02"))
    store.create_slot("sitter_s", _slot("09:00", "10:00", slot_date="2024-06-02"))
    store.create_slot("sitter_s", _slot("09:00", "10:00", slot_date="2024-06-05"))

    listed = store.list_slots("sitter_s", start_date="2024-06-01", end_date="2024-06-03")
    assert [(slot.date, slot.start_time) for slot in listed] == [("2024-06-02", "09:00"), ("2024-06-02", "13:00")]

    with pytest.raises(SchedulingValidationError):
        store.list_slots("sitter_s", start_date="2024-06-03", end_date="2024-06-01")


def test_slot_of_another_sitter_is_not_found(tmp_path):
    store = _store(tmp_path)
    slot = store.create_slot("sitter_s", _slot("09:00", "10:00"))
    with pytest.raises(SchedulingNotFoundError):
        store.get_slot("sitter_t", slot.id)
    with pytest.raises(SchedulingNotFoundError):
        store.update_slot("sitter_t", slot.id, AvailabilitySlotUpdate(notes="mine"))
    with pytest.raises(SchedulingNotFoundError):
        store.delete_slot("sitter_t", slot.id)
    assert store.get_slot("sitter_s", slot.id).id == slot.id


def test_update_rechecks_overlap_excluding_itself(tmp_path):
    store = _store(tmp_path)
    morning = store.create_slot("sitter_s", _slot("09:00", "12:00"))
    noon = store.create_slot("sitter_s", _slot("12:00", "13:00"))

    shrunk = store.update_slot("sitter_s", morning.id, AvailabilitySlotUpdate(end_time="11:30", notes="short day"))
    assert shrunk.end_time == "11:30"
    assert shrunk.notes == "short day"

    with pytest.raises(SchedulingConflictError):
        store.update_slot("sitter_s", noon.id, AvailabilitySlotUpdate(start_time="11:00"))
    assert store.get_slot("sitter_s", noon.id).start_time == "12:00"


def test_bulk_update_reports_missing_slots(tmp_path):
    store = _store(tmp_path)
    slot = store.create_slot("sitter_s", _slot("09:00", "10:00"))
    result = store.update_slots(
        "sitter_s",
        [
            SlotUpdateItem(slot_id=slot.id, update=AvailabilitySlotUpdate(slot_type="emergency", custom_rate=60)),
            SlotUpdateItem(slot_id="slot_missing", update=AvailabilitySlotUpdate(notes="x")),
        ],
    )
    assert result.succeeded[0].slot_type == "emergency"
    assert result.succeeded[0].custom_rate == 60
    assert result.failed[0].index == 1
    assert result.failed[0].reason == "Availability slot not found"


def test_bulk_delete_counts_only_removed_rows(tmp_path):
    store = _store(tmp_path)
    first = store.create_slot("sitter_s", _slot("09:00", "10:00"))
    second = store.create_slot("sitter_s", _slot("10:00", "11:00"))

    assert store.delete_slots("sitter_s", [first.id, first.id, "slot_missing"]) == 1
    assert store.delete_slots("sitter_s", [first.id]) == 0
    assert store.delete_slots("sitter_t", [second.id]) == 0
    assert store.delete_slots("sitter_s", []) == 0
    assert [slot.id for slot in store.list_slots("sitter_s")] == [second.id]


def test_consume_and_release_slots(tmp_path):
    store = _store(tmp_path)
    morning = store.create_slot("sitter_s", _slot("09:00", "12:00"))
    afternoon = store.create_slot("sitter_s", _slot("13:00", "15:00"))
    evening = store.create_slot("sitter_s", _slot("18:00", "19:00"))

    consumed = store.consume_slots("sitter_s", "2024-06-01", (600, 840), "bk_1")
    assert sorted(consumed) == sorted([morning.id, afternoon.id])
    taken = store.get_slot("sitter_s", morning.id)
    assert taken.is_available is False
    assert taken.booking_id == "bk_1"
    assert store.get_slot("sitter_s", evening.id).booking_id is None

    # already taken slots are not handed to a second booking
    assert store.consume_slots("sitter_s", "2024-06-01", (600, 840), "bk_2") == []

    assert store.release_slots("bk_1") == 2
    released = store.get_slot("sitter_s", afternoon.id)
    assert released.is_available is True
    assert released.booking_id is None


def test_explicit_null_booking_id_frees_slot(tmp_path):
    store = _store(tmp_path)
    slot = store.create_slot("sitter_s", _slot("09:00", "10:00"))
    store.update_slot("sitter_s", slot.id, AvailabilitySlotUpdate(booking_id="bk_1", is_available=False))

    freed = store.update_slot(
        "sitter_s",
        slot.id,
        AvailabilitySlotUpdate.model_validate({"booking_id": None, "is_available": True}),
    )
    assert freed.booking_id is None
    assert freed.is_available is True
