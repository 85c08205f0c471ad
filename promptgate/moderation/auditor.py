"""Audit orchestrator: the single admit/deny decision for a submission.

Runs the local pattern auditor first (authoritative, fails closed), then
the external classifier (best effort, fails open).  Allowlisted triggers
are removed from either stage before they can block.  Standard-domain
blocks are counted and escalated, and may mute the user.  Strict-domain
blocks only carry a content-policy message.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from promptgate.allowlist.cache import AllowlistCache
from promptgate.errors import ExternalServiceFailure, PolicyViolation
from promptgate.moderation.escalation import EscalationPolicy
from promptgate.moderation.models import (
    AuditOutcome,
    AuditSource,
    Classification,
    PromptTrigger,
    Submission,
    TriggerCategory,
)
from promptgate.moderation.patterns import PatternAuditor
from promptgate.restrictions.models import BlockedPrompt
from promptgate.restrictions.workflow import RestrictionWorkflow
from promptgate.violations.counter import ViolationCounter

if TYPE_CHECKING:
    from promptgate.ports import ModerationClassifier

log = logging.getLogger(__name__)


class PromptAuditor:
    """Composes the audit stages, the counter, escalation and enforcement."""

    def __init__(
        self,
        patterns: PatternAuditor,
        classifier: ModerationClassifier,
        allowlist: AllowlistCache,
        counter: ViolationCounter,
        escalation: EscalationPolicy,
        workflow: RestrictionWorkflow,
    ) -> None:
        self.patterns = patterns
        self.classifier = classifier
        self.allowlist = allowlist
        self.counter = counter
        self.escalation = escalation
        self.workflow = workflow

    # -- public API ----------------------------------------------------------

    def check(self, submission: Submission) -> AuditOutcome:
        """Run both audit stages without counting or enforcing anything."""
        if not submission.prompt or not submission.prompt.strip():
            return AuditOutcome(blocked=False)

        local = self.patterns.audit(
            submission.prompt,
            submission.negative_prompt,
            check_profanity=submission.strict,
        )
        if local.blocked:
            remaining = self.allowlist.filter(local.triggers)
            if remaining:
                return AuditOutcome.from_triggers(remaining, AuditSource.local_pattern)

        classification = self._classify(submission)
        if classification.flagged:
            external = [
                PromptTrigger(category=TriggerCategory.external, message=label, matched_word=label)
                for label in classification.categories
            ]
            remaining = self.allowlist.filter(external)
            if remaining:
                return AuditOutcome.from_triggers(remaining, AuditSource.external_service)

        return AuditOutcome(blocked=False)

    def audit(self, submission: Submission) -> None:
        """Admit the submission (return) or raise :class:`PolicyViolation`.

        ``CounterReadFailure`` propagates: without a reliable count the
        submission is not admitted.
        """
        outcome = self.check(submission)
        if not outcome.blocked:
            return

        log.info(
            "Prompt blocked",
            extra={
                "user_id": submission.user_id,
                "source": outcome.source.value,
                "reasons": outcome.reasons,
                "strict": submission.strict,
            },
        )

        if submission.strict:
            message = self.escalation.strict_message(outcome.reasons)
            raise PolicyViolation(message, outcome.reasons, outcome.source, outcome.triggers)

        count = self.counter.increment(submission.user_id, outcome.source.value)
        decision = self.escalation.evaluate(count, outcome.reasons)

        if decision.mute_now and not submission.moderator:
            self.workflow.enforce(
                submission.user_id,
                outcome.reasons,
                self._blocked_prompt(submission, outcome),
            )

        raise PolicyViolation(decision.user_message, outcome.reasons, outcome.source, outcome.triggers)

    # -- helpers -------------------------------------------------------------

    def _classify(self, submission: Submission) -> Classification:
        try:
            return self.classifier.classify(submission.prompt)
        except ExternalServiceFailure as exc:
            log.error(
                "External moderation failed; admitting on local checks only",
                exc_info=exc,
                extra={"user_id": submission.user_id, "source": AuditSource.external_service.value},
            )
            return Classification(flagged=False)

    @staticmethod
    def _blocked_prompt(submission: Submission, outcome: AuditOutcome) -> BlockedPrompt:
        first = outcome.triggers[0] if outcome.triggers else None
        return BlockedPrompt(
            prompt=submission.prompt,
            negative_prompt=submission.negative_prompt or "",
            source=outcome.source.value,
            category=first.category.value if first else "",
            matched_word=first.matched_word if first else None,
            image_id=submission.image_id,
            time=datetime.now(timezone.utc).isoformat(),
        )
