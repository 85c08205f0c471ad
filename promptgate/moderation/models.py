"""Data models for prompt auditing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AuditSource(str, Enum):
    """Which stage of the audit blocked a submission."""

    local_pattern = "local-pattern"
    external_service = "external-service"


class TriggerCategory(str, Enum):
    minor_age = "minor_age"
    poi = "poi"
    inappropriate_minor = "inappropriate_minor"
    inappropriate_poi = "inappropriate_poi"
    nsfw_blocklist = "nsfw_blocklist"
    profanity = "profanity"
    external = "external"


@dataclass
class Submission:
    """One prompt presented for audit before generation."""

    prompt: str
    user_id: str
    negative_prompt: str = ""
    strict: bool = False  # SFW-only domain: profanity is checked, no escalation
    moderator: bool = False  # exempt from automatic muting
    image_id: Optional[str] = None  # source image when the prompt came from a remix


@dataclass(frozen=True)
class PromptTrigger:
    """Structured reason behind a block."""

    category: TriggerCategory
    message: str
    matched_word: Optional[str] = None


@dataclass
class AuditOutcome:
    """Result of one audit stage."""

    blocked: bool
    reasons: list[str] = field(default_factory=list)
    source: AuditSource = AuditSource.local_pattern
    triggers: list[PromptTrigger] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.blocked and not self.reasons:
            raise ValueError("a blocked outcome must carry at least one reason")

    @classmethod
    def from_triggers(cls, triggers: list[PromptTrigger], source: AuditSource) -> AuditOutcome:
        reasons: list[str] = []
        for t in triggers:
            if t.message not in reasons:
                reasons.append(t.message)
        return cls(blocked=bool(triggers), reasons=reasons, source=source, triggers=list(triggers))


@dataclass
class Classification:
    """Verdict from the external moderation service."""

    flagged: bool
    categories: list[str] = field(default_factory=list)
    scores: dict[str, float] = field(default_factory=dict)


@dataclass
class CheckMatch:
    """One row of a dry-run audit (see ``PatternAuditor.explain``)."""

    check: str
    matched: bool
    category: Optional[TriggerCategory] = None
    message: str = ""
    matched_word: Optional[str] = None  # policy term, used as the allowlist trigger
    matched_text: str = ""  # text actually found in the prompt
    regex: str = ""
    target: str = "prompt"  # "prompt" | "negative_prompt"

    def to_trigger(self) -> PromptTrigger:
        if self.category is None:
            raise ValueError(f"check '{self.check}' has no category")
        return PromptTrigger(category=self.category, message=self.message, matched_word=self.matched_word)


@dataclass
class ExplainResult:
    matches: list[CheckMatch] = field(default_factory=list)
    would_block: bool = False
    block_reason: str = ""
