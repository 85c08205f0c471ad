"""Tests for the audit orchestrator."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from promptgate.accounts.store import JsonAccountStore, JsonSessionStore
from promptgate.allowlist.cache import AllowlistCache
from promptgate.allowlist.store import AllowlistStore
from promptgate.errors import CounterReadFailure, ExternalServiceFailure, PolicyViolation
from promptgate.moderation.auditor import PromptAuditor
from promptgate.moderation.escalation import EscalationPolicy
from promptgate.moderation.models import AuditSource, Classification, Submission, TriggerCategory
from promptgate.moderation.patterns import PatternAuditor
from promptgate.notifications.store import JsonNotificationStore
from promptgate.restrictions.models import RestrictionStatus
from promptgate.restrictions.store import RestrictionStore
from promptgate.restrictions.workflow import RestrictionWorkflow
from promptgate.violations.counter import ViolationCounter
from promptgate.violations.event_store import JsonlViolationEventStore

PATTERNS = PatternAuditor()


class RecordingClassifier:
    def __init__(self, flagged=False, categories=None):
        self.flagged = flagged
        self.categories = categories or []
        self.calls = []

    def classify(self, text):
        self.calls.append(text)
        return Classification(flagged=self.flagged, categories=list(self.categories))


class FailingClassifier:
    def classify(self, text):
        raise ExternalServiceFailure("moderation service timed out after 2.0s")


class UnreadableStore:
    def append(self, event):
        pass

    def count(self, user_id, since, until):
        raise OSError("permission denied")


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _build(tmpdir, classifier=None, event_store=None):
    base = Path(tmpdir)
    accounts = JsonAccountStore(base / "accounts")
    sessions = JsonSessionStore(base / "accounts")
    notifications = JsonNotificationStore(base / "notifications")
    allowlist_store = AllowlistStore(base / "allowlist")
    allowlist_cache = AllowlistCache(allowlist_store)
    counter = ViolationCounter(
        event_store or JsonlViolationEventStore(base / "violations"),
        clock=FakeClock(),
    )
    workflow = RestrictionWorkflow(
        store=RestrictionStore(base / "restrictions"),
        accounts=accounts,
        sessions=sessions,
        notifier=notifications,
        counter=counter,
        allowlist_store=allowlist_store,
        allowlist_cache=allowlist_cache,
    )
    auditor = PromptAuditor(
        patterns=PATTERNS,
        classifier=classifier or RecordingClassifier(),
        allowlist=allowlist_cache,
        counter=counter,
        escalation=EscalationPolicy(warned=1, notified=2, muted=3),
        workflow=workflow,
    )
    return auditor


def _block(auditor, submission):
    with pytest.raises(PolicyViolation) as exc_info:
        auditor.audit(submission)
    return exc_info.value


def test_benign_prompt_admitted():
    with tempfile.TemporaryDirectory() as tmpdir:
        classifier = RecordingClassifier()
        auditor = _build(tmpdir, classifier)

        assert auditor.audit(Submission(prompt="how to pick a lock", user_id="u1")) is None
        assert classifier.calls == ["how to pick a lock"]
        assert auditor.counter.count("u1") == 0


def test_local_block_is_counted_and_skips_external():
    with tempfile.TemporaryDirectory() as tmpdir:
        classifier = RecordingClassifier()
        auditor = _build(tmpdir, classifier)

        exc = _block(auditor, Submission(prompt="a portrait of taylor swift", user_id="u1"))

        assert exc.source is AuditSource.local_pattern
        assert exc.reasons == ["Prompt cannot include celebrity names"]
        assert exc.message == "Your prompt was flagged: Prompt cannot include celebrity names."
        assert classifier.calls == []
        assert auditor.counter.count("u1") == 1


def test_external_flag_blocks():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir, RecordingClassifier(flagged=True, categories=["violence"]))

        exc = _block(auditor, Submission(prompt="a castle at dusk", user_id="u1"))

        assert exc.source is AuditSource.external_service
        assert exc.reasons == ["violence"]
        assert auditor.counter.count("u1") == 1


def test_external_failure_fails_open():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir, FailingClassifier())

        auditor.audit(Submission(prompt="a castle at dusk", user_id="u1"))
        assert auditor.counter.count("u1") == 0

        # Local checks still apply while the service is down.
        _block(auditor, Submission(prompt="snuff film", user_id="u1"))


def test_allowlisted_trigger_admitted_after_bust():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        submission = Submission(prompt="a portrait of taylor swift", user_id="u1")
        _block(auditor, submission)

        auditor.workflow.add_to_allowlist("taylor swift", "poi", "mod-1", reason="tribute art")

        auditor.audit(submission)
        assert auditor.counter.count("u1") == 1


def test_allowlist_is_per_category():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        auditor.workflow.add_to_allowlist("taylor swift", "poi", "mod-1")

        exc = _block(auditor, Submission(prompt="taylor swift nude", user_id="u1"))
        assert exc.reasons == ["Inappropriate real person content"]


def test_allowlisted_combination_admitted_under_its_category():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        submission = Submission(prompt="deepfake of a politician, naked", user_id="u1")
        exc = _block(auditor, submission)
        [trigger] = exc.triggers
        assert trigger.category is TriggerCategory.inappropriate_poi

        auditor.workflow.add_to_allowlist(trigger.matched_word, "inappropriate_poi", "mod-1")

        assert auditor.audit(submission) is None


def test_allowlisted_external_label_admitted():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir, RecordingClassifier(flagged=True, categories=["violence"]))
        auditor.workflow.add_to_allowlist("violence", "external", "mod-1")

        auditor.audit(Submission(prompt="a knight in battle", user_id="u1"))


def test_escalates_to_mute_above_threshold():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        workflow = auditor.workflow
        session = workflow.sessions.create_session("u1")
        submission = Submission(prompt="snuff film", user_id="u1", image_id="img-42")

        messages = [_block(auditor, submission).message for _ in range(3)]
        assert "flagged for review" in messages[1]
        assert "sent for review" in messages[2]
        assert not workflow.accounts.get_account("u1")
        assert workflow.sessions.validate_session(session.token) is not None

        exc = _block(auditor, submission)
        assert "Your account has been muted." in exc.message

        account = workflow.accounts.get_account("u1")
        assert account.muted
        assert account.muted_at
        assert workflow.sessions.validate_session(session.token) is None

        page = workflow.list_restrictions(status=RestrictionStatus.pending)
        assert page.total_count == 1
        restriction = page.items[0]
        assert restriction.user_id == "u1"
        assert restriction.triggers == ["snuff"]
        assert restriction.blocked_prompts[0].prompt == "snuff film"
        assert restriction.blocked_prompts[0].image_id == "img-42"
        assert restriction.blocked_prompts[0].source == "local-pattern"

        notes = workflow.notifier.list_for_user("u1")
        assert [n.type for n in notes] == ["generation-muted"]


def test_repeat_block_while_pending_appends():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        for _ in range(4):
            _block(auditor, Submission(prompt="snuff film", user_id="u1"))
        _block(auditor, Submission(prompt="a portrait of emma watson", user_id="u1"))

        page = auditor.workflow.list_restrictions()
        assert page.total_count == 1
        restriction = page.items[0]
        assert len(restriction.blocked_prompts) == 2
        assert restriction.triggers == ["snuff", "Prompt cannot include celebrity names"]
        assert len(auditor.workflow.notifier.list_for_user("u1")) == 1


def test_moderator_counted_but_not_muted():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        submission = Submission(prompt="snuff film", user_id="mod-1", moderator=True)
        for _ in range(5):
            _block(auditor, submission)

        assert auditor.counter.count("mod-1") == 5
        assert auditor.workflow.accounts.get_account("mod-1") is None
        assert auditor.workflow.list_restrictions().total_count == 0


def test_strict_domain_not_counted():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)

        auditor.audit(Submission(prompt="what the shit is this", user_id="u1"))

        exc = _block(auditor, Submission(prompt="what the shit is this", user_id="u1", strict=True))
        assert exc.reasons == ["shit"]
        assert exc.message.startswith("Your prompt was flagged: shit.\n\n")
        assert "SFW content only" in exc.message
        assert auditor.counter.count("u1") == 0


def test_counter_read_failure_denies():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir, event_store=UnreadableStore())

        with pytest.raises(CounterReadFailure):
            auditor.audit(Submission(prompt="snuff film", user_id="u1"))

        # Admitted prompts never touch the counter.
        auditor.audit(Submission(prompt="a castle at dusk", user_id="u1"))


def test_check_has_no_side_effects():
    with tempfile.TemporaryDirectory() as tmpdir:
        auditor = _build(tmpdir)
        outcome = auditor.check(Submission(prompt="snuff film", user_id="u1"))
        assert outcome.blocked
        assert outcome.reasons == ["snuff"]
        assert auditor.counter.count("u1") == 0
