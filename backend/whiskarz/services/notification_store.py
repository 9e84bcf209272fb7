from datetime import datetime, timezone
from threading import Lock
from typing import List, Optional
from uuid import uuid4

from whiskarz.models import Booking, NotificationRecord
from whiskarz.services.push_sender import PushSender, push_sender


class NotificationStore:
    def __init__(self, sender: Optional[PushSender] = None):
        self._lock = Lock()
        self._notifications: List[NotificationRecord] = []
        self._sender = sender or push_sender

    def create(
        self,
        user_id: str,
        title: str,
        body: str,
        category: str = "system",
        deep_link: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex[:10]}",
            user_id=user_id,
            title=title,
            body=body,
            category=category,  # type: ignore[arg-type]
            read=False,
            created_at=datetime.now(timezone.utc).isoformat(),
            deep_link=deep_link,
        )
        with self._lock:
            self._notifications.insert(0, record)
        self._sender.send(record)
        return record

    def notify_booking_admitted(self, bookings: List[Booking], total_amount: float) -> List[NotificationRecord]:
        # the first day stands in for the whole request
        first = bookings[0]
        last = bookings[-1]
        span = first.service_date if len(bookings) == 1 else f"{first.service_date} to {last.service_date}"
        records = [
            self.create(
                user_id=first.client_id,
                title="Booking request received",
                body=f"{first.service_type} on {span} ({len(bookings)} day(s), ${total_amount:.2f})",
                category="booking",
                deep_link=f"booking:{first.id}",
            )
        ]
        if first.sitter_id:
            records.append(
                self.create(
                    user_id=first.sitter_id,
                    title="New booking request",
                    body=f"{first.service_type} on {span} for {first.number_of_pets} pet(s)",
                    category="booking",
                    deep_link=f"booking:{first.id}",
                )
            )
        return records

    def notify_sitter_assigned(self, booking: Booking) -> List[NotificationRecord]:
        if not booking.sitter_id:
            return []
        return [
            self.create(
                user_id=booking.client_id,
                title="Sitter assigned",
                body=f"A sitter has been assigned to your booking on {booking.service_date}",
                category="booking",
                deep_link=f"booking:{booking.id}",
            ),
            self.create(
                user_id=booking.sitter_id,
                title="You have a new assignment",
                body=f"{booking.service_type} on {booking.service_date}",
                category="booking",
                deep_link=f"booking:{booking.id}",
            ),
        ]

    def register_device_token(self, user_id: str, device_token: str) -> None:
        self._sender.register_device_token(user_id=user_id, device_token=device_token)

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        with self._lock:
            rows = [n for n in self._notifications if n.user_id == user_id]
            if unread_only:
                rows = [n for n in rows if not n.read]
            return rows[:100]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            for idx, row in enumerate(self._notifications):
                if row.id == notification_id and row.user_id == user_id:
                    updated = row.model_copy(update={"read": True})
                    self._notifications[idx] = updated
                    return updated
        return None


notification_store = NotificationStore()
