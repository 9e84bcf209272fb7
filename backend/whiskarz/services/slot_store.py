import logging
import sqlite3
from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from whiskarz.config import settings as app_settings
from whiskarz.models import (
    AvailabilitySlot,
    AvailabilitySlotCreate,
    AvailabilitySlotUpdate,
    BulkFailure,
    SlotBulkResult,
    SlotUpdateItem,
)
from whiskarz.services.errors import (
    SchedulingConflictError,
    SchedulingError,
    SchedulingNotFoundError,
    SchedulingValidationError,
)
from whiskarz.services.time_utils import hhmm_to_minutes, parse_iso_date

logger = logging.getLogger(__name__)

Interval = Tuple[int, int]


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open overlap; intervals that only touch do not overlap."""
    return a[0] < b[1] and b[0] < a[1]


def slot_interval(slot: AvailabilitySlot) -> Interval:
    return hhmm_to_minutes(slot.start_time), hhmm_to_minutes(slot.end_time)


def find_overlap(
    slots: Sequence[AvailabilitySlot],
    candidate: Interval,
    ignore_slot_id: Optional[str] = None,
) -> Optional[AvailabilitySlot]:
    """First slot of one (sitter, date) overlapping ``candidate``.

    ``slots`` must be sorted by start time. Stored slots never overlap each
    other, so ends are sorted too and only the last slot starting before the
    candidate's end can intersect it.
    """
    ordered = [slot for slot in slots if slot.id != ignore_slot_id]
    starts = [slot_interval(slot)[0] for slot in ordered]
    idx = bisect_left(starts, candidate[1])
    if idx == 0:
        return None
    previous = ordered[idx - 1]
    if overlaps(slot_interval(previous), candidate):
        return previous
    return None


@dataclass
class SlotStore:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS availability_slots (
                        id TEXT PRIMARY KEY,
                        sitter_id TEXT NOT NULL,
                        slot_date TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        start_minutes INTEGER NOT NULL,
                        is_available INTEGER NOT NULL DEFAULT 1,
                        booking_id TEXT,
                        notes TEXT NOT NULL DEFAULT '',
                        slot_type TEXT NOT NULL DEFAULT 'regular',
                        custom_rate REAL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_slots_sitter_date ON availability_slots (sitter_id, slot_date, start_minutes)"
                )
                conn.commit()

    def _row_to_slot(self, row: sqlite3.Row) -> AvailabilitySlot:
        return AvailabilitySlot(
            id=row["id"],
            sitter_id=row["sitter_id"],
            date=row["slot_date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            is_available=bool(row["is_available"]),
            booking_id=row["booking_id"],
            notes=row["notes"],
            slot_type=row["slot_type"],
            custom_rate=row["custom_rate"],
        )

    def _validate_window(self, slot_date: str, start_time: str, end_time: str) -> Tuple[str, Interval]:
        normalized_date = parse_iso_date(slot_date).isoformat()
        try:
            start = hhmm_to_minutes(start_time)
            end = hhmm_to_minutes(end_time)
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc
        if start >= end:
            raise SchedulingValidationError("Slot start_time must be before end_time")
        return normalized_date, (start, end)

    def _day_slots(self, conn: sqlite3.Connection, sitter_id: str, slot_date: str) -> List[AvailabilitySlot]:
        rows = conn.execute(
            """
            SELECT * FROM availability_slots
            WHERE sitter_id = ? AND slot_date = ?
            ORDER BY start_minutes
            """,
            (sitter_id, slot_date),
        ).fetchall()
        return [self._row_to_slot(row) for row in rows]

    def _fetch(self, conn: sqlite3.Connection, sitter_id: str, slot_id: str) -> AvailabilitySlot:
        row = conn.execute(
            "SELECT * FROM availability_slots WHERE id = ? AND sitter_id = ?",
            (slot_id, sitter_id),
        ).fetchone()
        if not row:
            raise SchedulingNotFoundError("Availability slot not found")
        return self._row_to_slot(row)

    def find_overlap(self, sitter_id: str, slot_date: str, candidate: Interval) -> Optional[AvailabilitySlot]:
        normalized_date = parse_iso_date(slot_date).isoformat()
        with self._lock:
            with self._connect() as conn:
                return find_overlap(self._day_slots(conn, sitter_id, normalized_date), candidate)

    def create_slot(self, sitter_id: str, payload: AvailabilitySlotCreate) -> AvailabilitySlot:
        slot_date, window = self._validate_window(payload.date, payload.start_time, payload.end_time)
        slot = AvailabilitySlot(
            id=f"slot_{uuid4().hex[:10]}",
            sitter_id=sitter_id,
            date=slot_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_available=payload.is_available,
            notes=payload.notes,
            slot_type=payload.slot_type,
            custom_rate=payload.custom_rate,
        )
        with self._lock:
            with self._connect() as conn:
                clash = find_overlap(self._day_slots(conn, sitter_id, slot_date), window)
                if clash:
                    raise SchedulingConflictError(
                        f"Slot overlaps with existing availability ({clash.start_time}-{clash.end_time})"
                    )
                conn.execute(
                    """
                    INSERT INTO availability_slots (
                        id, sitter_id, slot_date, start_time, end_time, start_minutes,
                        is_available, booking_id, notes, slot_type, custom_rate, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?, ?)
                    """,
                    (
                        slot.id,
                        sitter_id,
                        slot.date,
                        slot.start_time,
                        slot.end_time,
                        window[0],
                        int(slot.is_available),
                        slot.notes,
                        slot.slot_type,
                        slot.custom_rate,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                conn.commit()
        return slot

    def create_slots(self, sitter_id: str, payloads: List[AvailabilitySlotCreate]) -> SlotBulkResult:
        """Best effort: every slot is attempted, failures are reported, not raised."""
        result = SlotBulkResult()
        for index, payload in enumerate(payloads):
            try:
                result.succeeded.append(self.create_slot(sitter_id, payload))
            except SchedulingError as exc:
                logger.warning("Skipping slot %s for sitter %s: %s", index, sitter_id, exc)
                result.failed.append(BulkFailure(index=index, item=payload.model_dump(), reason=str(exc)))
        return result

    def list_slots(
        self,
        sitter_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[AvailabilitySlot]:
        query = "SELECT * FROM availability_slots WHERE sitter_id = ?"
        params: List[Any] = [sitter_id]
        if start_date and end_date:
            lower = parse_iso_date(start_date, field="start_date")
            upper = parse_iso_date(end_date, field="end_date")
            if upper < lower:
                raise SchedulingValidationError("end_date must not be before start_date")
            query += " AND slot_date >= ? AND slot_date <= ?"
            params.extend([lower.isoformat(), upper.isoformat()])
        query += " ORDER BY slot_date, start_minutes"
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_slot(row) for row in rows]

    def get_slot(self, sitter_id: str, slot_id: str) -> AvailabilitySlot:
        with self._lock:
            with self._connect() as conn:
                return self._fetch(conn, sitter_id, slot_id)

    def update_slot(self, sitter_id: str, slot_id: str, update: AvailabilitySlotUpdate) -> AvailabilitySlot:
        with self._lock:
            with self._connect() as conn:
                current = self._fetch(conn, sitter_id, slot_id)
                # an explicit null booking_id releases the slot; other nulls mean "unchanged"
                changes: Dict[str, Any] = {
                    key: value
                    for key, value in update.model_dump(exclude_unset=True).items()
                    if value is not None or key == "booking_id"
                }
                merged = current.model_copy(update=changes)
                slot_date, window = self._validate_window(merged.date, merged.start_time, merged.end_time)
                merged = merged.model_copy(update={"date": slot_date})

                clash = find_overlap(self._day_slots(conn, sitter_id, slot_date), window, ignore_slot_id=slot_id)
                if clash:
                    raise SchedulingConflictError(
                        f"Slot overlaps with existing availability ({clash.start_time}-{clash.end_time})"
                    )
                conn.execute(
                    """
                    UPDATE availability_slots
                    SET slot_date = ?, start_time = ?, end_time = ?, start_minutes = ?, is_available = ?,
                        booking_id = ?, notes = ?, slot_type = ?, custom_rate = ?
                    WHERE id = ? AND sitter_id = ?
                    """,
                    (
                        merged.date,
                        merged.start_time,
                        merged.end_time,
                        window[0],
                        int(merged.is_available),
                        merged.booking_id,
                        merged.notes,
                        merged.slot_type,
                        merged.custom_rate,
                        slot_id,
                        sitter_id,
                    ),
                )
                conn.commit()
        return merged

    def update_slots(self, sitter_id: str, items: List[SlotUpdateItem]) -> SlotBulkResult:
        result = SlotBulkResult()
        for index, item in enumerate(items):
            try:
                result.succeeded.append(self.update_slot(sitter_id, item.slot_id, item.update))
            except SchedulingError as exc:
                logger.warning("Skipping slot update %s for sitter %s: %s", item.slot_id, sitter_id, exc)
                result.failed.append(BulkFailure(index=index, item=item.model_dump(), reason=str(exc)))
        return result

    def delete_slot(self, sitter_id: str, slot_id: str) -> None:
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM availability_slots WHERE id = ? AND sitter_id = ?",
                    (slot_id, sitter_id),
                )
                conn.commit()
        if cursor.rowcount == 0:
            raise SchedulingNotFoundError("Availability slot not found")

    def delete_slots(self, sitter_id: str, slot_ids: List[str]) -> int:
        """Returns how many rows were actually removed; unknown ids count as zero."""
        unique_ids = sorted(set(slot_ids))
        if not unique_ids:
            return 0
        placeholders = ", ".join("?" for _ in unique_ids)
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"DELETE FROM availability_slots WHERE sitter_id = ? AND id IN ({placeholders})",
                    (sitter_id, *unique_ids),
                )
                conn.commit()
        return cursor.rowcount

    def consume_slots(self, sitter_id: str, slot_date: str, window: Interval, booking_id: str) -> List[str]:
        """Mark the sitter's free slots that overlap ``window`` as taken by ``booking_id``."""
        consumed: List[str] = []
        with self._lock:
            with self._connect() as conn:
                for slot in self._day_slots(conn, sitter_id, slot_date):
                    if not slot.is_available or slot.booking_id:
                        continue
                    if overlaps(slot_interval(slot), window):
                        consumed.append(slot.id)
                for slot_id in consumed:
                    conn.execute(
                        "UPDATE availability_slots SET is_available = 0, booking_id = ? WHERE id = ?",
                        (booking_id, slot_id),
                    )
                conn.commit()
        return consumed

    def release_slots(self, booking_id: str) -> int:
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute(
                    "UPDATE availability_slots SET is_available = 1, booking_id = NULL WHERE booking_id = ?",
                    (booking_id,),
                )
                conn.commit()
        return cursor.rowcount


slot_store = SlotStore(db_path=app_settings.db_path)
