"""Data models for generation restrictions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RestrictionStatus(str, Enum):
    """Pending is the only non-terminal state; it transitions exactly once."""

    pending = "Pending"
    upheld = "Upheld"
    overturned = "Overturned"

    @property
    def is_terminal(self) -> bool:
        return self is not RestrictionStatus.pending


@dataclass
class BlockedPrompt:
    """Snapshot of a blocked submission kept for the reviewing moderator."""

    prompt: str
    negative_prompt: str = ""
    source: str = ""
    category: str = ""
    matched_word: Optional[str] = None
    image_id: Optional[str] = None
    time: str = ""


@dataclass
class Restriction:
    id: str
    user_id: str
    status: RestrictionStatus = RestrictionStatus.pending
    type: str = "generation"
    triggers: list[str] = field(default_factory=list)
    blocked_prompts: list[BlockedPrompt] = field(default_factory=list)
    created_at: str = ""
    resolved_at: str = ""
    resolved_by: str = ""
    resolved_message: str = ""
    user_message: str = ""
    user_message_at: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.status, str):
            self.status = RestrictionStatus(self.status)
        self.blocked_prompts = [
            BlockedPrompt(**b) if isinstance(b, dict) else b for b in self.blocked_prompts
        ]


@dataclass
class RestrictionPage:
    items: list[Restriction]
    total_count: int
    page: int = 1
    limit: int = 20
