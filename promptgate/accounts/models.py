"""Account and session models: only the fields promptgate reads or writes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """Restriction-relevant view of a user account."""

    id: str
    username: str
    moderator: bool = False
    muted: bool = False
    muted_at: str = ""  # set when the provisional (automatic) mute is applied
    mute_confirmed_at: str = ""  # set when a moderator upholds the mute
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.utcnow().isoformat()

    @property
    def mute_confirmed(self) -> bool:
        return bool(self.mute_confirmed_at)


@dataclass
class Session:
    """Represents an active user session."""

    id: str
    user_id: str
    token: str
    created_at: str = ""
    expires_at: str = ""
    invalidated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.utcnow().isoformat()
