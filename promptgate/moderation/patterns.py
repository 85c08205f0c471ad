"""Local, rule-based prompt auditor.

Scans a prompt (and its negative prompt) against the pattern policy and
reports every structured trigger it finds.  No I/O happens after the policy
is loaded, so the auditor is the fail-closed baseline for the highest
severity categories: it cannot be taken down by a third-party outage.
"""

from __future__ import annotations

import html
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import yaml

from promptgate.moderation.models import (
    AuditOutcome,
    AuditSource,
    CheckMatch,
    ExplainResult,
    PromptTrigger,
    TriggerCategory,
)

DEFAULT_POLICY_PATH = Path(__file__).with_name("policy.yaml")

# ---------------------------------------------------------------------------
# Pattern policy
# ---------------------------------------------------------------------------


@dataclass
class HarmfulCombination:
    type: str  # "minor" | "poi"
    pattern: re.Pattern[str]


@dataclass
class PatternPolicy:
    """Word lists and patterns the auditor checks against."""

    name: str = "default"
    version: str = "1.0.0"
    blocked: list[str] = field(default_factory=list)
    nsfw: list[str] = field(default_factory=list)
    young_nouns: list[str] = field(default_factory=list)
    young_negative_nouns: list[str] = field(default_factory=list)
    poi: list[str] = field(default_factory=list)
    profanity: list[str] = field(default_factory=list)
    harmful_combinations: list[HarmfulCombination] = field(default_factory=list)


def load_pattern_policy(path: str | Path | None = None) -> PatternPolicy:
    """Load a pattern policy from YAML (the packaged default when *path* is None)."""
    with open(path or DEFAULT_POLICY_PATH) as f:
        data = yaml.safe_load(f) or {}

    young = data.get("young", {}) or {}
    combos = [
        HarmfulCombination(
            type=c.get("type", "minor"),
            pattern=re.compile(c["pattern"], re.IGNORECASE),
        )
        for c in data.get("harmful_combinations", []) or []
    ]
    return PatternPolicy(
        name=data.get("name", "unnamed"),
        version=str(data.get("version", "1.0.0")),
        blocked=list(data.get("blocked", []) or []),
        nsfw=list(data.get("nsfw", []) or []),
        young_nouns=list(young.get("nouns", []) or []),
        young_negative_nouns=list(young.get("negative_nouns", []) or []),
        poi=list(data.get("poi", []) or []),
        profanity=list(data.get("profanity", []) or []),
        harmful_combinations=combos,
    )


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_SEP = r"[^a-zA-Z0-9]*"
_LEFT = r"(?:[^a-zA-Z0-9]+|^)"
_RIGHT = r"(?:[^a-zA-Z0-9]+|$)"
_LEET = {"i": "[il1]", "o": "[o0]", "s": "[sz]", "e": "[e3]"}


def normalize_text(text: Optional[str]) -> str:
    """Unescape HTML entities and strip accents."""
    if not text:
        return ""
    text = html.unescape(text)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def prepare_word_regex(word: str, pluralize: bool = False) -> re.Pattern[str]:
    """Build an obfuscation-tolerant, boundary-anchored regex for *word*."""
    if "[" in word:
        body = re.sub(r"\s+", _SEP, word)
    else:
        parts = []
        for ch in word.lower():
            if ch.isspace():
                if parts and parts[-1] != _SEP:
                    parts.append(_SEP)
            elif ch in _LEET:
                parts.append(_LEET[ch])
            else:
                parts.append(re.escape(ch))
        body = "".join(parts)
    if pluralize:
        body += "[sz]*"
    return re.compile(_LEFT + body + _RIGHT, re.IGNORECASE)


class WordList:
    """A compiled list of policy terms."""

    def __init__(
        self,
        words: list[str],
        pluralize: bool = False,
        preprocessor: Optional[Callable[[str], str]] = None,
    ) -> None:
        self._entries = [(w, prepare_word_regex(w, pluralize)) for w in words]
        self._preprocessor = preprocessor

    def find_all(
        self,
        text: str,
        skip: Optional[Callable[[str, re.Match[str]], bool]] = None,
    ) -> list[tuple[str, re.Match[str]]]:
        """Return ``(term, match)`` for every term found in *text*."""
        text = text.strip()
        if self._preprocessor:
            text = self._preprocessor(text)
        found = []
        for word, regex in self._entries:
            match = regex.search(text)
            if match is None:
                continue
            if skip is not None and skip(text, match):
                continue
            found.append((word, match))
        return found

    def first(self, text: str) -> Optional[tuple[str, re.Match[str]]]:
        hits = self.find_all(text)
        return hits[0] if hits else None


def _strip_poi_noise(text: str) -> str:
    return re.sub(r"[^\w\s|:\[\],]", "", text)


def _inside_edit_block(text: str, match: re.Match[str]) -> bool:
    """True when the match sits in prompt-editing syntax like ``[a|b]`` or ``[a:b:c]``."""
    # the boundary group may have consumed the opening bracket
    start = match.start() + re.match(r"[^a-zA-Z0-9]*", match.group(0)).end()
    open_at = text.rfind("[", 0, start)
    close_at = text.find("]", start)
    if open_at == -1 or close_at == -1 or text.find("]", open_at, start) != -1:
        return False
    block = text[open_at + 1 : close_at]
    has_pipe = len([p for p in block.split("|") if p.strip()]) > 1
    has_colon = len([p for p in block.split(":") if p.strip()]) > 2
    return has_pipe or has_colon


def _matched_text(match: re.Match[str]) -> str:
    return re.sub(r"^[^a-zA-Z0-9]+|[^a-zA-Z0-9]+$", "", match.group(0))


# ---------------------------------------------------------------------------
# Minor age expressions
# ---------------------------------------------------------------------------

_AGE_SPELLINGS: list[tuple[int, list[str]]] = [
    (17, ["seven{teen}", "sevn{teen}", "sevem{teen}", "seve{teen}", "7{teen}", "17"]),
    (16, ["six{teen}", "sicks{teen}", "sixe{teen}", "6{teen}", "16"]),
    (15, ["fif{teen}", "fiv{teen}", "five{teen}", "fife{teen}", "fivve{teen}", "5{teen}", "15"]),
    (14, ["four{teen}", "for{teen}", "fore{teen}", "foure{teen}", "4{teen}", "14"]),
    (13, ["thir{teen}", "3{teen}", "ther{teen}", "three{teen}", "tree{teen}", "thee{teen}",
          "thre{teen}", "thri{teen}", "13"]),
    (12, ["twelve", "twelv", "twelf", "2{teen}", "twel", "12"]),
    (11, ["eleven", "eleve", "elevn", "1{teen}", "elvn", "11"]),
    (10, ["ten", "tenn", "tene", "10"]),
    (9, ["nine", "nien", "nein", "niene", "9"]),
    (8, ["eight", "eigt", "eigh", "8"]),
    (7, ["seven", "sevn", "sevem", "seve", "7"]),
    (6, ["six", "sicks", "sixe", "6"]),
    (5, ["five", "fiv", "fife", "fivve", "5"]),
    (4, ["four", "for", "fore", "foure", "4"]),
    (3, ["three", "thee", "thre", "thri", "3"]),
    (2, ["two", "2"]),
    (1, ["one", "uno", "1"]),
]
_TEEN = ["teen", "ten", "tein", "tien", "tn"]
_YEARS = ["y", "yr", "yrs", "years", "year", "anos"]
_OLD = ["o", "old"]
_AGE_TEMPLATES = [
    "aged {age}",
    "age {age}",
    "age of {age}",
    "{age} age",
    "{age} {years} {old}",
    "{age} {years}",
    "{age}th birthday",
]


def _build_age_lookup() -> dict[str, int]:
    lookup: dict[str, int] = {}
    for age, spellings in _AGE_SPELLINGS:
        for spelling in spellings:
            if "{teen}" in spelling:
                base = spelling.replace("{teen}", "").strip()
                variants = [base + t for t in _TEEN] + [f"{base} {t}" for t in _TEEN]
            else:
                variants = [spelling]
            for v in variants:
                lookup.setdefault(v, age)
    return lookup


_AGE_LOOKUP = _build_age_lookup()


def _alternation(values: list[str]) -> str:
    return "|".join(sorted(set(values), key=len, reverse=True))


def _build_age_regexes() -> list[re.Pattern[str]]:
    parts = {
        "age": _alternation(list(_AGE_LOOKUP)),
        "years": _alternation(_YEARS),
        "old": _alternation(_OLD),
    }
    regexes = []
    for template in _AGE_TEMPLATES:
        regex_str = template
        for key, alts in parts.items():
            regex_str = regex_str.replace("{" + key + "}", f"(?P<{key}>{alts})")
        regex_str = re.sub(r"\s+", lambda _: _SEP, regex_str)
        regexes.append(re.compile(_LEFT + "0*" + regex_str + _RIGHT, re.IGNORECASE))
    return regexes


_AGE_REGEXES = _build_age_regexes()


def find_minor_age(text: str) -> Optional[tuple[int, re.Match[str]]]:
    """Return ``(age, match)`` for the first minor-age expression in *text*."""
    if not text:
        return None
    for regex in _AGE_REGEXES:
        match = regex.search(text)
        if match is None:
            continue
        spelled = re.sub(r"[^a-z0-9]+", " ", match.group("age").lower()).strip()
        age = _AGE_LOOKUP.get(spelled)
        if age is not None:
            return age, match
    return None


# ---------------------------------------------------------------------------
# Auditor
# ---------------------------------------------------------------------------

_MSG_POI = "Prompt cannot include celebrity names"
_MSG_NEG_POI = "Negative prompt cannot include celebrity names"
_MSG_MINOR = "Inappropriate minor content"
_MSG_REAL_PERSON = "Inappropriate real person content"


class PatternAuditor:
    """Deterministic prompt scanner driven by a :class:`PatternPolicy`."""

    def __init__(self, policy: PatternPolicy | None = None) -> None:
        self.policy = policy or load_pattern_policy()
        self._blocked = WordList(self.policy.blocked)
        self._nsfw = WordList(self.policy.nsfw)
        self._young = WordList(self.policy.young_nouns, pluralize=True)
        self._young_negative = WordList(self.policy.young_negative_nouns, pluralize=True)
        self._poi = WordList(self.policy.poi, preprocessor=_strip_poi_noise)
        self._profanity = WordList(self.policy.profanity)

    # -- public API ----------------------------------------------------------

    def audit(
        self,
        text: str,
        negative_text: str | None = "",
        check_profanity: bool = False,
    ) -> AuditOutcome:
        """Audit a prompt.  Every trigger found is reported, de-duplicated."""
        if not text or not text.strip():
            return AuditOutcome(blocked=False)

        triggers: list[PromptTrigger] = []
        for row in self._scan(text, negative_text or "", check_profanity):
            if not row.matched:
                continue
            trigger = row.to_trigger()
            if trigger not in triggers:
                triggers.append(trigger)
        return AuditOutcome.from_triggers(triggers, AuditSource.local_pattern)

    def explain(self, text: str, negative_text: str | None = "") -> ExplainResult:
        """Dry run for moderators: every check with its regex and matched text.

        Profanity is always included so strict-domain behavior can be inspected.
        """
        if not text or not text.strip():
            return ExplainResult()
        rows = self._scan(text, negative_text or "", check_profanity=True)
        hits = [r for r in rows if r.matched]
        return ExplainResult(
            matches=rows,
            would_block=bool(hits),
            block_reason=hits[0].message if hits else "",
        )

    # -- checks --------------------------------------------------------------

    def _scan(self, text: str, negative_text: str, check_profanity: bool) -> list[CheckMatch]:
        prompt = normalize_text(text)
        negative = normalize_text(negative_text)
        rows: list[CheckMatch] = []

        # 1. Minor age
        rows.extend(self._check_minor_age(prompt))

        # 2. People of interest
        rows.extend(self._check_words(
            "poi", self._poi, prompt, TriggerCategory.poi, lambda _: _MSG_POI,
            skip=_inside_edit_block,
        ))
        if negative:
            rows.extend(self._check_words(
                "negative_poi", self._poi, negative, TriggerCategory.poi, lambda _: _MSG_NEG_POI,
                target="negative_prompt", skip=_inside_edit_block,
            ))

        # 3. Inappropriate combinations
        rows.extend(self._check_inappropriate(prompt, negative))

        # 4. Always-blocked terms
        rows.extend(self._check_words(
            "nsfw_blocklist", self._blocked, prompt, TriggerCategory.nsfw_blocklist, lambda w: w,
        ))

        # 5. Profanity (strict domains only)
        if check_profanity:
            rows.extend(self._check_words(
                "profanity", self._profanity, prompt, TriggerCategory.profanity, lambda w: w,
            ))
        return rows

    @staticmethod
    def _check_minor_age(prompt: str) -> list[CheckMatch]:
        found = find_minor_age(prompt)
        if found is None:
            return [CheckMatch(check="minor_age", matched=False)]
        age, match = found
        return [
            CheckMatch(
                check="minor_age",
                matched=True,
                category=TriggerCategory.minor_age,
                message=f"{age} year old",
                matched_word=str(age),
                matched_text=_matched_text(match),
                regex=match.re.pattern,
            )
        ]

    @staticmethod
    def _check_words(
        check: str,
        words: WordList,
        text: str,
        category: TriggerCategory,
        message: Callable[[str], str],
        target: str = "prompt",
        skip: Optional[Callable[[str, re.Match[str]], bool]] = None,
    ) -> list[CheckMatch]:
        hits = words.find_all(text, skip=skip) if text else []
        if not hits:
            return [CheckMatch(check=check, matched=False, target=target)]
        return [
            CheckMatch(
                check=check,
                matched=True,
                category=category,
                message=message(word),
                matched_word=word,
                matched_text=_matched_text(match),
                regex=match.re.pattern,
                target=target,
            )
            for word, match in hits
        ]

    def _check_combinations(self, text: str, target: str) -> list[CheckMatch]:
        rows = []
        minor, poi = TriggerCategory.inappropriate_minor, TriggerCategory.inappropriate_poi
        for combo in self.policy.harmful_combinations:
            match = combo.pattern.search(text)
            if match is None:
                continue
            rows.append(
                CheckMatch(
                    check="harmful_combo" if target == "prompt" else "negative_harmful_combo",
                    matched=True,
                    category=minor if combo.type == "minor" else poi,
                    message=_MSG_MINOR if combo.type == "minor" else _MSG_REAL_PERSON,
                    matched_word=match.group(0),
                    matched_text=match.group(0),
                    regex=combo.pattern.pattern,
                    target=target,
                )
            )
        return rows

    def _check_inappropriate(self, prompt: str, negative: str) -> list[CheckMatch]:
        prompt = re.sub(r"['.\-]", "", prompt)
        rows = self._check_combinations(prompt, "prompt")

        if self._nsfw.first(prompt) is None:
            if not rows:
                rows.append(CheckMatch(check="harmful_combo", matched=False))
            return rows

        if negative:
            rows.extend(self._check_combinations(negative, "negative_prompt"))

        for word, match in self._poi.find_all(prompt, skip=_inside_edit_block):
            rows.append(CheckMatch(
                check="inappropriate_poi", matched=True, category=TriggerCategory.inappropriate_poi,
                message=_MSG_REAL_PERSON, matched_word=word, matched_text=_matched_text(match),
                regex=match.re.pattern,
            ))

        age = find_minor_age(prompt)
        if age is not None:
            rows.append(CheckMatch(
                check="inappropriate_minor_age", matched=True,
                category=TriggerCategory.inappropriate_minor, message=_MSG_MINOR,
                matched_word=f"{age[0]} year old", matched_text=_matched_text(age[1]),
                regex=age[1].re.pattern,
            ))
        for word, match in self._young.find_all(prompt):
            rows.append(CheckMatch(
                check="young_nouns", matched=True, category=TriggerCategory.inappropriate_minor,
                message=_MSG_MINOR, matched_word=word, matched_text=_matched_text(match),
                regex=match.re.pattern,
            ))
        if negative:
            for word, match in self._young_negative.find_all(negative):
                rows.append(CheckMatch(
                    check="negative_young_nouns", matched=True,
                    category=TriggerCategory.inappropriate_minor, message=_MSG_MINOR,
                    matched_word=word, matched_text=_matched_text(match),
                    regex=match.re.pattern, target="negative_prompt",
                ))
        if not any(r.matched for r in rows):
            rows.append(CheckMatch(check="inappropriate", matched=False))
        return rows
