"""Tests for the local pattern auditor."""

import tempfile
from pathlib import Path

from promptgate.moderation.models import AuditSource, TriggerCategory
from promptgate.moderation.patterns import (
    PatternAuditor,
    find_minor_age,
    load_pattern_policy,
    normalize_text,
)

auditor = PatternAuditor()


def _categories(outcome):
    return [t.category for t in outcome.triggers]


def test_benign_prompt_admitted():
    outcome = auditor.audit("how to pick a lock")
    assert not outcome.blocked
    assert outcome.reasons == []


def test_empty_prompt_admitted():
    assert not auditor.audit("").blocked
    assert not auditor.audit("   ").blocked


def test_minor_age_blocked():
    outcome = auditor.audit("a 12 year old girl standing in a field")
    assert outcome.blocked
    assert outcome.source is AuditSource.local_pattern
    assert outcome.reasons == ["12 year old"]
    assert outcome.triggers[0].category is TriggerCategory.minor_age


def test_minor_age_spelled_out():
    found = find_minor_age("portrait, aged fourteen, soft light")
    assert found is not None
    assert found[0] == 14


def test_adult_age_not_flagged():
    assert find_minor_age("a 35 year old man") is None
    assert not auditor.audit("a 35 year old man reading").blocked


def test_poi_blocked():
    outcome = auditor.audit("a portrait of Taylor Swift on stage")
    assert outcome.blocked
    assert outcome.reasons == ["Prompt cannot include celebrity names"]
    assert outcome.triggers[0].matched_word == "taylor swift"


def test_poi_obfuscation():
    assert auditor.audit("taylor-swift singing").blocked
    assert auditor.audit("taylor sw1ft singing").blocked
    assert auditor.audit("tàylor swift singing").blocked


def test_poi_in_edit_block_skipped():
    assert not auditor.audit("[taylor swift|a cat] in a garden").blocked


def test_negative_prompt_poi():
    outcome = auditor.audit("a lighthouse", negative_text="emma watson")
    assert outcome.blocked
    assert outcome.reasons == ["Negative prompt cannot include celebrity names"]


def test_all_triggers_reported():
    outcome = auditor.audit("taylor swift nude")
    assert TriggerCategory.poi in _categories(outcome)
    assert TriggerCategory.inappropriate_poi in _categories(outcome)
    assert outcome.reasons == [
        "Prompt cannot include celebrity names",
        "Inappropriate real person content",
    ]


def test_harmful_combination_without_nsfw_context():
    outcome = auditor.audit("deepfake of a politician, naked")
    assert outcome.blocked
    assert "Inappropriate real person content" in outcome.reasons
    assert set(_categories(outcome)) == {TriggerCategory.inappropriate_poi}


def test_minor_combination_reports_inappropriate_minor():
    outcome = auditor.audit("a sexual scene with a toddler")
    assert outcome.blocked
    assert outcome.reasons == ["Inappropriate minor content"]
    assert set(_categories(outcome)) == {TriggerCategory.inappropriate_minor}


def test_nsfw_with_young_noun():
    outcome = auditor.audit("nude child")
    assert outcome.blocked
    assert outcome.reasons == ["Inappropriate minor content"]
    assert TriggerCategory.inappropriate_minor in _categories(outcome)


def test_nsfw_alone_admitted():
    assert not auditor.audit("a nude figure study in charcoal").blocked


def test_nsfw_with_negative_adult():
    outcome = auditor.audit("nude portrait", negative_text="adult, mature")
    assert outcome.blocked
    assert outcome.reasons == ["Inappropriate minor content"]


def test_blocklist_term():
    outcome = auditor.audit("snuff film poster")
    assert outcome.blocked
    assert outcome.triggers[0].category is TriggerCategory.nsfw_blocklist
    assert outcome.reasons == ["snuff"]


def test_profanity_only_when_requested():
    assert not auditor.audit("what the shit is this").blocked
    outcome = auditor.audit("what the shit is this", check_profanity=True)
    assert outcome.blocked
    assert outcome.triggers[0].category is TriggerCategory.profanity


def test_normalize_text():
    assert normalize_text("caf&eacute;") == "cafe"
    assert normalize_text(None) == ""


def test_explain_reports_every_check():
    result = auditor.explain("a castle at dusk")
    assert not result.would_block
    checks = {row.check for row in result.matches}
    assert {"minor_age", "poi", "nsfw_blocklist", "profanity"} <= checks
    assert all(not row.matched for row in result.matches)


def test_explain_block_reason():
    result = auditor.explain("taylor swift at the beach")
    assert result.would_block
    assert result.block_reason == "Prompt cannot include celebrity names"
    hit = next(r for r in result.matches if r.matched)
    assert hit.matched_text.lower() == "taylor swift"
    assert hit.regex


def test_custom_policy_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "policy.yaml"
        path.write_text(
            "name: custom\n"
            "blocked: [forbidden thing]\n"
            "poi: [jane roe]\n"
        )
        policy = load_pattern_policy(path)
        assert policy.name == "custom"

        custom = PatternAuditor(policy)
        assert custom.audit("a forbidden thing").blocked
        assert custom.audit("jane roe smiling").blocked
        assert not custom.audit("taylor swift smiling").blocked
