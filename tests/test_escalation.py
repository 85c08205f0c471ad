"""Tests for the escalation policy."""

import pytest

from promptgate.errors import ConfigError
from promptgate.moderation.escalation import EscalationPolicy, EscalationTier


def test_default_tiers():
    policy = EscalationPolicy()
    assert policy.tier_for(0) is EscalationTier.ok
    assert policy.tier_for(3) is EscalationTier.ok
    assert policy.tier_for(4) is EscalationTier.warned
    assert policy.tier_for(6) is EscalationTier.notified
    assert policy.tier_for(8) is EscalationTier.notified
    assert policy.tier_for(9) is EscalationTier.muted


def test_tiers_are_monotonic():
    policy = EscalationPolicy(warned=2, notified=4, muted=7)
    levels = [policy.tier_for(n).level for n in range(20)]
    assert levels == sorted(levels)


def test_messages_per_tier():
    policy = EscalationPolicy(warned=1, notified=2, muted=3)
    reasons = ["snuff", "Inappropriate minor content"]

    ok = policy.evaluate(1, reasons)
    assert ok.user_message == "Your prompt was flagged: snuff, Inappropriate minor content."
    assert not ok.mute_now

    warned = policy.evaluate(2, reasons)
    assert "flagged for review if this continues" in warned.user_message
    assert not warned.mute_now

    notified = policy.evaluate(3, reasons)
    assert "sent for review" in notified.user_message
    assert not notified.mute_now

    muted = policy.evaluate(4, reasons)
    assert muted.tier is EscalationTier.muted
    assert muted.user_message.endswith("Your account has been muted.")
    assert muted.mute_now


def test_strict_message():
    policy = EscalationPolicy(strict_notice="SFW only.")
    assert policy.strict_message(["shit"]) == "Your prompt was flagged: shit.\n\nSFW only."


@pytest.mark.parametrize("thresholds", [(3, 3, 8), (5, 4, 8), (3, 5, 5), (-1, 5, 8)])
def test_thresholds_must_ascend(thresholds):
    warned, notified, muted = thresholds
    with pytest.raises(ConfigError):
        EscalationPolicy(warned=warned, notified=notified, muted=muted)
