"""Interfaces of the collaborators promptgate consumes.

The engine only talks to accounts, sessions, notifications, the event store
and the external classifier through these protocols, so each can be swapped
independently (file-backed reference implementations ship with the package;
tests substitute failing or recording fakes).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from promptgate.accounts.models import Account
from promptgate.moderation.models import Classification
from promptgate.violations.models import ViolationEvent


@runtime_checkable
class AccountStore(Protocol):
    def get_account(self, user_id: str) -> Optional[Account]: ...

    def set_muted(self, user_id: str, muted: bool) -> None: ...

    def confirm_mute(self, user_id: str) -> None: ...

    def reset_violation_state(self, user_id: str) -> None: ...

    def find_user_ids_by_username(self, fragment: str) -> list[str]: ...


@runtime_checkable
class SessionService(Protocol):
    def invalidate_sessions(self, user_id: str) -> int:
        """Invalidate every active session of *user_id*.  Safe to call repeatedly."""
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def notify(
        self,
        user_id: str,
        type: str,
        idempotency_key: str,
        payload: dict[str, Any],
    ) -> bool:
        """Queue a notification.  Returns False when *idempotency_key* was already used."""
        ...


@runtime_checkable
class ViolationEventStore(Protocol):
    def append(self, event: ViolationEvent) -> None: ...

    def count(self, user_id: str, since: datetime, until: datetime) -> int:
        """Count violation events for *user_id* with ``since < timestamp <= until``
        appended after the latest reset event in that range.
        """
        ...


@runtime_checkable
class ModerationClassifier(Protocol):
    def classify(self, text: str) -> Classification: ...
