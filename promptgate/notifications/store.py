"""File-based notification outbox.

Reference implementation of the ``NotificationDispatcher`` port.
Notifications are claimed by idempotency key: a redelivered event with a
key that was already used is dropped.  Storage is file-based JSON in
``~/.promptgate/notifications/``; delivery to the user is handled by the
surrounding application.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from promptgate.jsonfile import file_lock, read_rows, write_rows

# Notification types emitted by promptgate
NOTIFICATION_TYPES = [
    "generation-muted",
    "generation-restriction-upheld",
    "generation-restriction-overturned",
]


@dataclass
class Notification:
    id: str
    user_id: str
    type: str
    key: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""


class JsonNotificationStore:
    """Manages notifications with file-based JSON persistence."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".promptgate" / "notifications"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._notifications_file = self._base_dir / "notifications.json"
        self._lock = threading.Lock()
        self._file_lock = file_lock(self._notifications_file)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _load(self) -> list[dict[str, Any]]:
        return read_rows(self._notifications_file)

    def _save(self, data: list[dict[str, Any]]) -> None:
        write_rows(self._notifications_file, data)

    @staticmethod
    def _from_dict(d: dict[str, Any]) -> Notification:
        return Notification(**{k: v for k, v in d.items() if k in Notification.__dataclass_fields__})

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def notify(self, user_id: str, type: str, idempotency_key: str, payload: dict[str, Any]) -> bool:
        """Record a notification.  Returns False if *idempotency_key* was already claimed."""
        with self._lock, self._file_lock:
            data = self._load()
            if any(d.get("key") == idempotency_key for d in data):
                return False
            notification = Notification(
                id=uuid.uuid4().hex[:16],
                user_id=user_id,
                type=type,
                key=idempotency_key,
                payload=dict(payload),
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            data.append(asdict(notification))
            self._save(data)
        return True

    def list_for_user(self, user_id: str) -> list[Notification]:
        """Return the user's notifications, newest first."""
        items = [self._from_dict(d) for d in self._load() if d.get("user_id") == user_id]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items
