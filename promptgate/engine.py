"""Wire the stores, clients and services into one ready-to-use engine.

Example usage::

    from promptgate.config import load_settings
    from promptgate.engine import build_engine

    engine = build_engine(load_settings())
    engine.auditor.audit(Submission(prompt="a castle at dusk", user_id="u1"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from promptgate.accounts.store import JsonAccountStore, JsonSessionStore
from promptgate.allowlist.cache import AllowlistCache
from promptgate.allowlist.store import AllowlistStore
from promptgate.config import Settings
from promptgate.external.client import ExternalModerationClient
from promptgate.moderation.auditor import PromptAuditor
from promptgate.moderation.escalation import EscalationPolicy
from promptgate.moderation.patterns import PatternAuditor, load_pattern_policy
from promptgate.notifications.store import JsonNotificationStore
from promptgate.restrictions.store import RestrictionStore
from promptgate.restrictions.workflow import RestrictionWorkflow
from promptgate.violations.counter import ViolationCounter
from promptgate.violations.event_store import JsonlViolationEventStore

log = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything a caller needs, sharing one allowlist cache and one counter."""

    settings: Settings
    accounts: JsonAccountStore
    sessions: JsonSessionStore
    notifications: JsonNotificationStore
    allowlist_store: AllowlistStore
    allowlist_cache: AllowlistCache
    counter: ViolationCounter
    classifier: ExternalModerationClient
    patterns: PatternAuditor
    escalation: EscalationPolicy
    restrictions: RestrictionStore
    workflow: RestrictionWorkflow
    auditor: PromptAuditor

    def close(self) -> None:
        self.classifier.close()


def build_engine(settings: Settings) -> Engine:
    """Construct every component under ``settings.data_dir``."""
    base = settings.data_dir
    accounts = JsonAccountStore(base / "accounts")
    sessions = JsonSessionStore(base / "accounts")
    notifications = JsonNotificationStore(base / "notifications")
    allowlist_store = AllowlistStore(base / "allowlist")
    allowlist_cache = AllowlistCache(allowlist_store, ttl_seconds=settings.allowlist_ttl_seconds)
    counter = ViolationCounter(
        JsonlViolationEventStore(base / "violations"),
        window=timedelta(hours=settings.window_hours),
    )
    classifier = ExternalModerationClient(
        url=settings.external.url,
        api_key=settings.external.api_key,
        policy_id=settings.external.policy_id,
        timeout=settings.external.timeout_seconds,
    )
    patterns = PatternAuditor(load_pattern_policy(settings.policy_path))
    escalation = EscalationPolicy(
        warned=settings.warned,
        notified=settings.notified,
        muted=settings.muted,
        strict_notice=settings.strict_domain_notice,
    )
    restrictions = RestrictionStore(base / "restrictions")
    workflow = RestrictionWorkflow(
        store=restrictions,
        accounts=accounts,
        sessions=sessions,
        notifier=notifications,
        counter=counter,
        allowlist_store=allowlist_store,
        allowlist_cache=allowlist_cache,
    )
    auditor = PromptAuditor(
        patterns=patterns,
        classifier=classifier,
        allowlist=allowlist_cache,
        counter=counter,
        escalation=escalation,
        workflow=workflow,
    )

    if not classifier.configured:
        log.info("External moderation not configured; local pattern checks only")
    log.debug("Engine built", extra={"data_dir": str(base)})

    return Engine(
        settings=settings,
        accounts=accounts,
        sessions=sessions,
        notifications=notifications,
        allowlist_store=allowlist_store,
        allowlist_cache=allowlist_cache,
        counter=counter,
        classifier=classifier,
        patterns=patterns,
        escalation=escalation,
        restrictions=restrictions,
        workflow=workflow,
        auditor=auditor,
    )
