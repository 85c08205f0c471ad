"""Data models for the violation event log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class EventKind(str, Enum):
    violation = "violation"
    reset = "reset"  # logical reset: earlier violations stop counting


@dataclass
class ViolationEvent:
    """One append-only entry in the violation log."""

    user_id: str
    source: str = ""
    kind: EventKind = EventKind.violation
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if isinstance(self.kind, str):
            self.kind = EventKind(self.kind)
        if isinstance(self.timestamp, str):
            self.timestamp = datetime.fromisoformat(self.timestamp)
        if self.timestamp.tzinfo is None:
            self.timestamp = self.timestamp.replace(tzinfo=timezone.utc)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "source": self.source,
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
        }
