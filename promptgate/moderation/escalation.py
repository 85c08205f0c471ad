"""Escalation policy: maps a rolling violation count to an enforcement tier.

Thresholds are ascending policy constants (``warned < notified < muted``).
A user whose count is above ``muted`` is muted automatically and their
account is queued for moderator review.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from promptgate.errors import ConfigError

DEFAULT_WARNED = 3
DEFAULT_NOTIFIED = 5
DEFAULT_MUTED = 8

DEFAULT_STRICT_NOTICE = (
    "This site is intended for SFW content only. For mature content generation, "
    "please use the standard site where you have more freedom to generate mature content."
)


class EscalationTier(str, Enum):
    """Enforcement tiers, ordered by severity."""

    ok = "ok"
    warned = "warned"
    notified = "notified"
    muted = "muted"

    @property
    def level(self) -> int:
        return {
            EscalationTier.ok: 0,
            EscalationTier.warned: 1,
            EscalationTier.notified: 2,
            EscalationTier.muted: 3,
        }[self]


@dataclass
class EscalationDecision:
    tier: EscalationTier
    mute_now: bool
    user_message: str


class EscalationPolicy:
    """Pure function over three ascending thresholds."""

    def __init__(
        self,
        warned: int = DEFAULT_WARNED,
        notified: int = DEFAULT_NOTIFIED,
        muted: int = DEFAULT_MUTED,
        strict_notice: str = DEFAULT_STRICT_NOTICE,
    ) -> None:
        if not (0 <= warned < notified < muted):
            raise ConfigError(
                f"escalation thresholds must satisfy 0 <= warned < notified < muted "
                f"(got {warned}, {notified}, {muted})"
            )
        self.warned = warned
        self.notified = notified
        self.muted = muted
        self.strict_notice = strict_notice

    def tier_for(self, count: int) -> EscalationTier:
        if count > self.muted:
            return EscalationTier.muted
        if count > self.notified:
            return EscalationTier.notified
        if count > self.warned:
            return EscalationTier.warned
        return EscalationTier.ok

    def evaluate(self, count: int, reasons: list[str]) -> EscalationDecision:
        """Return the tier, whether to mute now, and the composed user message."""
        tier = self.tier_for(count)
        message = f"Your prompt was flagged: {', '.join(reasons)}."

        if tier is EscalationTier.muted:
            message += " Your account has been muted."
        elif tier is EscalationTier.notified:
            message += (
                " Your account has been sent for review. If you continue to attempt blocked "
                "prompts, your generation permissions will be revoked."
            )
        elif tier is EscalationTier.warned:
            message += " Your account will be flagged for review if this continues."

        return EscalationDecision(
            tier=tier,
            mute_now=tier is EscalationTier.muted,
            user_message=message,
        )

    def strict_message(self, reasons: list[str]) -> str:
        """Message for strict-domain blocks.  No tiers: these never escalate."""
        return f"Your prompt was flagged: {', '.join(reasons)}.\n\n{self.strict_notice}"
