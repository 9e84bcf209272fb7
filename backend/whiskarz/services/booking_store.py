import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from pendulum import DateTime

from whiskarz.config import settings as app_settings
from whiskarz.models import Booking
from whiskarz.services.errors import (
    SchedulingConflictError,
    SchedulingNotFoundError,
    SchedulingValidationError,
)
from whiskarz.services.time_utils import from_utc_iso, to_utc_iso

logger = logging.getLogger(__name__)

BOOKING_ACTIVE_STATUSES = {"pending", "confirmed", "assigned", "in_progress"}
BOOKING_TERMINAL_STATUSES = {"completed", "cancelled"}

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    "pending": {"confirmed", "assigned", "cancelled"},
    "confirmed": {"assigned", "in_progress", "cancelled"},
    "assigned": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled"},
}

STATUSES_REQUIRING_SITTER = {"assigned", "in_progress"}

CONFLICT_MESSAGE = "Selected dates conflict with existing bookings"

InstantRange = Tuple[DateTime, DateTime]


def _intersects(booking: Booking, intervals: Sequence[InstantRange]) -> bool:
    return any(booking.start_at < end and start < booking.end_at for start, end in intervals)


@dataclass
class BookingStore:
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
                    CREATE TABLE IF NOT EXISTS bookings (
                        id TEXT PRIMARY KEY,
                        client_id TEXT NOT NULL,
                        sitter_id TEXT,
                        service_date TEXT NOT NULL,
                        start_at TEXT NOT NULL,
                        end_at TEXT NOT NULL,
                        service_type TEXT NOT NULL,
                        number_of_pets INTEGER NOT NULL,
                        pet_types_json TEXT NOT NULL,
                        status TEXT NOT NULL,
                        notes TEXT NOT NULL DEFAULT '',
                        admin_notes TEXT NOT NULL DEFAULT '',
                        total_amount REAL NOT NULL,
                        service_address TEXT,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_bookings_conflict ON bookings (sitter_id, start_at, end_at, status)"
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_bookings_client ON bookings (client_id, start_at)")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS booking_status_history (
                        id TEXT PRIMARY KEY,
                        booking_id TEXT NOT NULL,
                        from_status TEXT NOT NULL,
                        to_status TEXT NOT NULL,
                        note TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _row_to_booking(self, row: sqlite3.Row) -> Booking:
        return Booking(
            id=row["id"],
            client_id=row["client_id"],
            sitter_id=row["sitter_id"],
            service_date=row["service_date"],
            start_at=from_utc_iso(row["start_at"]),
            end_at=from_utc_iso(row["end_at"]),
            service_type=row["service_type"],
            number_of_pets=row["number_of_pets"],
            pet_types=json.loads(row["pet_types_json"]),
            status=row["status"],
            notes=row["notes"],
            admin_notes=row["admin_notes"],
            total_amount=row["total_amount"],
            service_address=row["service_address"],
            created_at=row["created_at"],
        )

    def _record_history(
        self,
        conn: sqlite3.Connection,
        booking_id: str,
        from_status: str,
        to_status: str,
        note: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO booking_status_history (id, booking_id, from_status, to_status, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                f"bsh_{uuid4().hex[:10]}",
                booking_id,
                from_status,
                to_status,
                note,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    def _fetch(self, conn: sqlite3.Connection, booking_id: str) -> Booking:
        row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        if not row:
            raise SchedulingNotFoundError("Booking not found")
        return self._row_to_booking(row)

    def _conflicts(
        self,
        conn: sqlite3.Connection,
        intervals: Sequence[InstantRange],
        sitter_id: Optional[str],
        ignore_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        if not intervals:
            return []
        lower = min(start for start, _ in intervals)
        upper = max(end for _, end in intervals)
        placeholders = ", ".join("?" for _ in BOOKING_ACTIVE_STATUSES)
        query = (
            f"SELECT * FROM bookings WHERE status IN ({placeholders}) AND start_at < ? AND end_at > ?"
        )
        params: List[Any] = [*sorted(BOOKING_ACTIVE_STATUSES), to_utc_iso(upper), to_utc_iso(lower)]
        if sitter_id:
            query += " AND sitter_id = ?"
            params.append(sitter_id)
        if ignore_booking_id:
            query += " AND id != ?"
            params.append(ignore_booking_id)
        query += " ORDER BY start_at"
        rows = conn.execute(query, tuple(params)).fetchall()
        # the SQL bound covers the whole span; keep only hits on an actual day window
        return [booking for booking in map(self._row_to_booking, rows) if _intersects(booking, intervals)]

    def find_conflicts(
        self,
        intervals: Sequence[InstantRange],
        sitter_id: Optional[str] = None,
        ignore_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        with self._lock:
            with self._connect() as conn:
                return self._conflicts(conn, intervals, sitter_id, ignore_booking_id)

    def count_assigned_in_range(self, lower_iso: str, upper_iso: str, sitter_id: Optional[str] = None) -> int:
        placeholders = ", ".join("?" for _ in BOOKING_ACTIVE_STATUSES)
        query = (
            f"SELECT COUNT(*) AS total FROM bookings WHERE status IN ({placeholders}) "
            "AND sitter_id IS NOT NULL AND start_at < ? AND end_at > ?"
        )
        params: List[Any] = [*sorted(BOOKING_ACTIVE_STATUSES), upper_iso, lower_iso]
        if sitter_id:
            query += " AND sitter_id = ?"
            params.append(sitter_id)
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(query, tuple(params)).fetchone()
        return int(row["total"])

    def insert_if_free(self, bookings: List[Booking], sitter_id: Optional[str]) -> List[Booking]:
        """Conflict check and insert of sibling bookings as one atomic step.

        Nothing is written when any day conflicts.
        """
        intervals = [(booking.start_at, booking.end_at) for booking in bookings]
        created_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                clashes = self._conflicts(conn, intervals, sitter_id)
                if clashes:
                    conn.rollback()
                    raise SchedulingConflictError(CONFLICT_MESSAGE)
                for booking in bookings:
                    conn.execute(
                        """
                        INSERT INTO bookings (
                            id, client_id, sitter_id, service_date, start_at, end_at, service_type,
                            number_of_pets, pet_types_json, status, notes, admin_notes, total_amount,
                            service_address, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            booking.id,
                            booking.client_id,
                            booking.sitter_id,
                            booking.service_date,
                            to_utc_iso(booking.start_at),
                            to_utc_iso(booking.end_at),
                            booking.service_type,
                            booking.number_of_pets,
                            json.dumps(booking.pet_types),
                            booking.status,
                            booking.notes,
                            booking.admin_notes,
                            booking.total_amount,
                            booking.service_address,
                            created_at,
                        ),
                    )
                    self._record_history(conn, booking.id, "none", booking.status, "booking requested")
                conn.commit()
        return [booking.model_copy(update={"created_at": created_at}) for booking in bookings]

    def get_booking(self, booking_id: str) -> Booking:
        with self._lock:
            with self._connect() as conn:
                return self._fetch(conn, booking_id)

    def list_for_client(self, client_id: str) -> List[Booking]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM bookings WHERE client_id = ? ORDER BY start_at DESC",
                    (client_id,),
                ).fetchall()
        return [self._row_to_booking(row) for row in rows]

    def list_for_sitter(self, sitter_id: str) -> List[Booking]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM bookings WHERE sitter_id = ? ORDER BY start_at DESC",
                    (sitter_id,),
                ).fetchall()
        return [self._row_to_booking(row) for row in rows]

    def assign_sitter(self, booking_id: str, sitter_id: str) -> Booking:
        with self._lock:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                booking = self._fetch(conn, booking_id)
                if booking.status in BOOKING_TERMINAL_STATUSES:
                    raise SchedulingConflictError("Booking is already terminal")
                if booking.status == "in_progress":
                    raise SchedulingConflictError("Cannot reassign a booking that is in progress")
                clashes = self._conflicts(
                    conn,
                    [(booking.start_at, booking.end_at)],
                    sitter_id,
                    ignore_booking_id=booking_id,
                )
                if clashes:
                    raise SchedulingConflictError("Sitter has a conflicting booking for this time")
                conn.execute(
                    "UPDATE bookings SET sitter_id = ?, status = 'assigned' WHERE id = ?",
                    (sitter_id, booking_id),
                )
                self._record_history(conn, booking_id, booking.status, "assigned", f"sitter {sitter_id} assigned")
                conn.commit()
        return booking.model_copy(update={"sitter_id": sitter_id, "status": "assigned"})

    def unassign_sitter(self, booking_id: str) -> Booking:
        with self._lock:
            with self._connect() as conn:
                booking = self._fetch(conn, booking_id)
                if booking.status in BOOKING_TERMINAL_STATUSES:
                    raise SchedulingConflictError("Booking is already terminal")
                if booking.status == "in_progress":
                    raise SchedulingConflictError("Cannot unassign a booking that is in progress")
                next_status = "pending" if booking.status == "assigned" else booking.status
                conn.execute(
                    "UPDATE bookings SET sitter_id = NULL, status = ? WHERE id = ?",
                    (next_status, booking_id),
                )
                self._record_history(conn, booking_id, booking.status, next_status, "sitter unassigned")
                conn.commit()
        return booking.model_copy(update={"sitter_id": None, "status": next_status})

    def update_status(self, booking_id: str, status: str, note: str = "") -> Booking:
        with self._lock:
            with self._connect() as conn:
                booking = self._fetch(conn, booking_id)
                if booking.status in BOOKING_TERMINAL_STATUSES:
                    raise SchedulingConflictError("Booking is already terminal")
                if status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
                    raise SchedulingValidationError(f"Invalid status transition: {booking.status} -> {status}")
                if status in STATUSES_REQUIRING_SITTER and not booking.sitter_id:
                    raise SchedulingValidationError(f"A sitter must be assigned before status '{status}'")
                conn.execute(
                    "UPDATE bookings SET status = ?, admin_notes = ? WHERE id = ?",
                    (status, note or booking.admin_notes, booking_id),
                )
                self._record_history(conn, booking_id, booking.status, status, note)
                conn.commit()
        return booking.model_copy(update={"status": status, "admin_notes": note or booking.admin_notes})


booking_store = BookingStore(db_path=app_settings.db_path)
