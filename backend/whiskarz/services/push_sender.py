import logging
import os
from threading import Lock
from typing import Dict, List

from whiskarz.models import NotificationRecord

logger = logging.getLogger(__name__)


class PushSender:
    """Firebase multicast delivery for notification records.

    Disabled unless FIREBASE_CREDENTIALS_PATH points at a service account.
    """

    def __init__(self):
        self._lock = Lock()
        self._initialized = False
        self._enabled = False
        self._messaging = None
        self._device_tokens: Dict[str, set[str]] = {}

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            credentials_path = os.getenv("FIREBASE_CREDENTIALS_PATH", "").strip()
            if not credentials_path:
                self._initialized = True
                logger.info("Push sender disabled: FIREBASE_CREDENTIALS_PATH not set")
                return
            try:
                import firebase_admin
                from firebase_admin import credentials, messaging
            except ImportError:
                self._initialized = True
                logger.exception("Push sender disabled: firebase-admin is not installed")
                return

            try:
                cred = credentials.Certificate(credentials_path)
                if not firebase_admin._apps:  # pylint: disable=protected-access
                    firebase_admin.initialize_app(cred)
                self._messaging = messaging
                self._enabled = True
                logger.info("Push sender initialized")
            except Exception:
                logger.exception("Push sender disabled: Firebase init failed")
            finally:
                self._initialized = True

    @property
    def enabled(self) -> bool:
        self._ensure_initialized()
        return self._enabled

    def register_device_token(self, user_id: str, device_token: str) -> None:
        if not device_token.strip():
            return
        with self._lock:
            self._device_tokens.setdefault(user_id, set()).add(device_token.strip())

    def send(self, record: NotificationRecord) -> int:
        """Push ``record`` to the user's devices; returns how many deliveries succeeded.

        Failures are logged and dropped.
        """
        self._ensure_initialized()
        with self._lock:
            tokens: List[str] = sorted(self._device_tokens.get(record.user_id, set()))
        if not self._enabled or not tokens:
            return 0
        assert self._messaging is not None
        try:
            message = self._messaging.MulticastMessage(
                notification=self._messaging.Notification(title=record.title, body=record.body),
                tokens=tokens,
                data={
                    "notification_id": record.id,
                    "category": record.category,
                    "deep_link": record.deep_link or "",
                },
            )
            batch = self._messaging.send_each_for_multicast(message)
        except Exception:
            logger.exception("Push send failed for notification %s", record.id)
            return 0

        invalid: List[str] = []
        for idx, response in enumerate(batch.responses):
            if response.success:
                continue
            error_text = str(response.exception).lower() if response.exception else ""
            if "registration token" in error_text or "invalid argument" in error_text:
                invalid.append(tokens[idx])
        if invalid:
            with self._lock:
                current = self._device_tokens.get(record.user_id, set())
                for token in invalid:
                    current.discard(token)
        return batch.success_count


push_sender = PushSender()
