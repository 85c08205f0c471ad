"""Exception hierarchy for promptgate.

Only :class:`PolicyViolation` and the restriction errors are meant to reach an
end user or a moderator as an actionable message.  The remaining errors are
infrastructure faults that callers log and alert on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from promptgate.moderation.models import AuditSource, PromptTrigger


class PromptGateError(Exception):
    """Base class for every error raised by promptgate."""


class ConfigError(PromptGateError):
    """Invalid configuration detected at startup."""


class PolicyViolation(PromptGateError):
    """A submission was denied.

    Carries the ordered reasons, the source that blocked it, and the composed
    user-facing message (``str(exc)``).
    """

    def __init__(
        self,
        message: str,
        reasons: list[str],
        source: AuditSource,
        triggers: list[PromptTrigger] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reasons = list(reasons)
        self.source = source
        self.triggers = list(triggers or [])


class CounterReadFailure(PromptGateError):
    """The violation count could not be read; the submission must not be admitted."""


class ExternalServiceFailure(PromptGateError):
    """The external moderation service failed or returned an unusable response."""


class RestrictionError(PromptGateError):
    """Base class for moderator-workflow errors."""


class RestrictionNotFound(RestrictionError):
    def __init__(self, restriction_id: str) -> None:
        super().__init__(f"Restriction '{restriction_id}' not found")
        self.restriction_id = restriction_id


class RestrictionAlreadyResolved(RestrictionError):
    def __init__(self, restriction_id: str, status: str) -> None:
        super().__init__(f"Restriction '{restriction_id}' has already been resolved ({status})")
        self.restriction_id = restriction_id
        self.status = status


class StoreCorrupted(PromptGateError):
    """A store file exists but cannot be parsed; it is left untouched."""

    def __init__(self, path: object, detail: str) -> None:
        super().__init__(f"Store file '{path}' is unreadable: {detail}")
        self.path = path
        self.detail = detail
