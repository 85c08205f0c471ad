"""Enforcement and the moderator review workflow.

``enforce`` is called by the audit orchestrator when escalation reaches
the mute tier.  Everything else is moderator-facing and runs later:
resolving a restriction (uphold or overturn), curating the allowlist, and
browsing restrictions.

The account-state change is the safety-critical effect of every operation
here.  Notifications are best effort: a failed dispatch is logged and never
undoes a mute or un-mute that was already applied.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from promptgate.allowlist.cache import AllowlistCache
from promptgate.allowlist.store import AllowlistEntry, AllowlistStore
from promptgate.errors import RestrictionNotFound
from promptgate.restrictions.models import (
    BlockedPrompt,
    Restriction,
    RestrictionPage,
    RestrictionStatus,
)
from promptgate.restrictions.store import RestrictionStore
from promptgate.violations.counter import ViolationCounter

if TYPE_CHECKING:
    from promptgate.ports import AccountStore, NotificationDispatcher, SessionService

log = logging.getLogger(__name__)

NOTIFY_MUTED = "generation-muted"
NOTIFY_UPHELD = "generation-restriction-upheld"
NOTIFY_OVERTURNED = "generation-restriction-overturned"


class RestrictionWorkflow:
    def __init__(
        self,
        store: RestrictionStore,
        accounts: AccountStore,
        sessions: SessionService,
        notifier: NotificationDispatcher,
        counter: ViolationCounter,
        allowlist_store: AllowlistStore,
        allowlist_cache: AllowlistCache,
    ) -> None:
        self.store = store
        self.accounts = accounts
        self.sessions = sessions
        self.notifier = notifier
        self.counter = counter
        self.allowlist_store = allowlist_store
        self.allowlist_cache = allowlist_cache

    # -- enforcement ---------------------------------------------------------

    def enforce(self, user_id: str, reasons: list[str], blocked_prompt: BlockedPrompt) -> Restriction:
        """Mute *user_id*, end their sessions, and queue the mute for review.

        A user with a Pending restriction already gets the new prompt appended
        to it rather than a second restriction.
        """
        self.accounts.set_muted(user_id, True)
        self.sessions.invalidate_sessions(user_id)
        restriction, created = self.store.create_or_append_pending(user_id, reasons, blocked_prompt)

        log.warning(
            "User auto-muted",
            extra={
                "user_id": user_id,
                "restriction_id": restriction.id,
                "reasons": reasons,
                "source": blocked_prompt.source,
                "new_restriction": created,
            },
        )
        if created:
            self._notify(user_id, NOTIFY_MUTED, f"{NOTIFY_MUTED}:{restriction.id}", {
                "restrictionId": restriction.id,
            })
        return restriction

    # -- moderator actions ---------------------------------------------------

    def resolve(
        self,
        restriction_id: str,
        decision: RestrictionStatus,
        moderator_id: str,
        message: str = "",
    ) -> Restriction:
        """Uphold or overturn a Pending restriction.

        Raises ``RestrictionNotFound`` / ``RestrictionAlreadyResolved`` before
        any side effect is applied.
        """
        restriction = self.store.transition(restriction_id, decision, moderator_id, message)
        user_id = restriction.user_id

        if restriction.status is RestrictionStatus.upheld:
            self.accounts.confirm_mute(user_id)
            self.sessions.invalidate_sessions(user_id)
            notify_type = NOTIFY_UPHELD
        elif restriction.status is RestrictionStatus.overturned:
            self.accounts.set_muted(user_id, False)
            self.accounts.reset_violation_state(user_id)
            self.counter.reset(user_id)
            self.sessions.invalidate_sessions(user_id)
            notify_type = NOTIFY_OVERTURNED
        else:
            raise ValueError(f"unhandled restriction status {restriction.status.value}")

        self._notify(user_id, notify_type, f"{notify_type}:{restriction.id}", {
            "restrictionId": restriction.id,
            "resolvedMessage": message,
        })
        log.info(
            "User restriction resolved",
            extra={
                "restriction_id": restriction.id,
                "status": restriction.status.value,
                "moderator_id": moderator_id,
                "user_id": user_id,
            },
        )
        return restriction

    def add_to_allowlist(
        self,
        trigger: str,
        category: str,
        moderator_id: str,
        reason: str = "",
        restriction_id: Optional[str] = None,
    ) -> AllowlistEntry:
        """Mark a (trigger, category) pair as benign so it stops blocking prompts."""
        entry = self.allowlist_store.upsert(trigger, category, moderator_id, reason, restriction_id)
        self.allowlist_cache.bust()
        log.info(
            "Prompt allowlist entry added",
            extra={
                "trigger": trigger,
                "category": category,
                "moderator_id": moderator_id,
                "restriction_id": restriction_id,
            },
        )
        return entry

    def remove_from_allowlist(self, trigger: str, category: str, moderator_id: str) -> bool:
        removed = self.allowlist_store.remove(trigger, category)
        if removed:
            self.allowlist_cache.bust()
            log.info(
                "Prompt allowlist entry removed",
                extra={"trigger": trigger, "category": category, "moderator_id": moderator_id},
            )
        return removed

    # -- queries -------------------------------------------------------------

    def get_restriction(self, restriction_id: str) -> Restriction:
        restriction = self.store.get(restriction_id)
        if restriction is None:
            raise RestrictionNotFound(restriction_id)
        return restriction

    def list_restrictions(
        self,
        status: Optional[RestrictionStatus] = None,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> RestrictionPage:
        """Paginated restrictions for the review queue, newest first."""
        page = max(page, 1)
        user_ids: Optional[set[str]] = None
        if username:
            user_ids = set(self.accounts.find_user_ids_by_username(username))
        if user_id:
            user_ids = {user_id} if user_ids is None else user_ids & {user_id}
        items, total = self.store.query(
            status=status,
            user_ids=user_ids,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return RestrictionPage(items=items, total_count=total, page=page, limit=limit)

    # -- restricted user -----------------------------------------------------

    def submit_context(self, restriction_id: str, user_id: str, message: str) -> Restriction:
        """Let the restricted user explain themselves to the reviewing moderator."""
        return self.store.set_user_message(restriction_id, user_id, message.strip())

    # -- helpers -------------------------------------------------------------

    def _notify(self, user_id: str, type: str, key: str, payload: dict[str, Any]) -> None:
        try:
            self.notifier.notify(user_id, type, key, payload)
        except Exception as exc:  # any dispatcher error; the account change stands
            log.error(
                "Notification dispatch failed",
                exc_info=exc,
                extra={"user_id": user_id, "notification_type": type, "idempotency_key": key},
            )
