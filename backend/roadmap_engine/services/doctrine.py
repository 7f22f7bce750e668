"""Static content-quality doctrine and the pure checks that apply it.

The doctrine never changes per user or per run. It is loaded once as a frozen module
constant and only read, so any number of pipeline runs can score content concurrently.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class QualityVerdict(str, Enum):
    PASS = "pass"
    REGENERATE = "regenerate"
    FALLBACK = "fallback"


SEVERITY_WEIGHTS: Dict[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.MAJOR: 10,
    Severity.MINOR: 5,
}


@dataclass(frozen=True)
class ForbiddenPhrase:
    phrase: str
    category: str
    severity: Severity


@dataclass(frozen=True)
class Violation:
    rule: str
    offending: str
    fix: str
    severity: Severity

    def to_dict(self) -> Dict[str, str]:
        return {
            "rule": self.rule,
            "offending": self.offending,
            "fix": self.fix,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class Doctrine:
    forbidden: Tuple[ForbiddenPhrase, ...]
    vague_verbs: Tuple[str, ...]
    required_step_fields: Tuple[str, ...]
    minimum_mistakes: int = 2
    minimum_abilities: int = 1
    pass_threshold: int = 70
    regenerate_threshold: int = 50
    _vague_pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        alternatives = "|".join(re.escape(verb) for verb in sorted(self.vague_verbs, key=len, reverse=True))
        # A vague verb only counts when it opens a sentence or line.
        pattern = re.compile(rf"(?:^|[.!?\n]\s*)(?P<verb>(?:{alternatives}))\b", re.IGNORECASE)
        object.__setattr__(self, "_vague_pattern", pattern)

    @property
    def vague_pattern(self) -> re.Pattern:
        return self._vague_pattern


def _phrases(category: str, severity: Severity, *phrases: str) -> Tuple[ForbiddenPhrase, ...]:
    return tuple(ForbiddenPhrase(phrase=phrase, category=category, severity=severity) for phrase in phrases)


DEFAULT_DOCTRINE = Doctrine(
    forbidden=(
        *_phrases(
            "vague_action",
            Severity.MAJOR,
            "practice until comfortable",
            "practice until confident",
            "read documentation",
            "study the basics",
            "understand the concepts",
            "learn as needed",
            "explore on your own",
            "get familiar with",
        ),
        *_phrases(
            "weak_time_reference",
            Severity.MAJOR,
            "when you feel ready",
            "at your own pace",
            "take your time",
            "as long as you need",
        ),
        *_phrases(
            "generic_advice",
            Severity.MAJOR,
            "just practice more",
            "keep trying",
            "do your best",
            "try to remember",
        ),
        *_phrases(
            "passive_learning",
            Severity.MINOR,
            "watch tutorials",
            "read articles",
            "review materials",
            "go through the content",
        ),
        *_phrases(
            "hedging",
            Severity.MINOR,
            "you might want to",
            "consider trying",
            "perhaps look at",
            "you could try",
        ),
        *_phrases(
            "empty_encouragement",
            Severity.MINOR,
            "you can do it",
            "believe in yourself",
            "stay positive",
            "don't give up",
        ),
    ),
    vague_verbs=(
        "understand",
        "learn",
        "know",
        "study",
        "explore",
        "familiarize",
        "grasp",
        "comprehend",
        "appreciate",
        "consider",
        "think about",
        "look into",
        "get familiar with",
        "become aware of",
    ),
    required_step_fields=("whyFirst", "commonMistakes", "selfTest", "abilities"),
)


def list_violations(text: str, doctrine: Doctrine = DEFAULT_DOCTRINE) -> List[Violation]:
    """Return every lexical doctrine violation found in ``text``."""
    if not text:
        return []
    violations: List[Violation] = []
    lowered = text.lower()

    for rule in doctrine.forbidden:
        start = lowered.find(rule.phrase)
        if start < 0:
            continue
        violations.append(
            Violation(
                rule=f"forbidden:{rule.category}",
                offending=text[start : start + len(rule.phrase)],
                fix=f'Replace "{rule.phrase}" with a specific action, a deliverable, and a way to check it.',
                severity=rule.severity,
            )
        )

    seen_verbs: set[str] = set()
    for match in doctrine.vague_pattern.finditer(text):
        verb = match.group("verb")
        key = verb.lower()
        if key in seen_verbs:
            continue
        seen_verbs.add(key)
        violations.append(
            Violation(
                rule="noVagueVerbs",
                offending=verb,
                fix=f'Open with an observable action instead of "{key}" (write, build, solve, explain without notes).',
                severity=Severity.MINOR,
            )
        )
    return violations


def check_step_requirements(step: Mapping[str, Any], doctrine: Doctrine = DEFAULT_DOCTRINE) -> List[Violation]:
    """Return violations for missing required fields and minimum counts on one step."""
    violations: List[Violation] = []
    for name in doctrine.required_step_fields:
        value = step.get(name)
        if not value:
            violations.append(
                Violation(
                    rule="requiredFields",
                    offending=name,
                    fix=f"Add {name} with substantive content.",
                    severity=Severity.CRITICAL,
                )
            )

    mistakes = step.get("commonMistakes") or []
    if mistakes and len(mistakes) < doctrine.minimum_mistakes:
        violations.append(
            Violation(
                rule="minimumMistakes",
                offending=str(len(mistakes)),
                fix=f"List at least {doctrine.minimum_mistakes} specific mistakes, each with its consequence.",
                severity=Severity.MAJOR,
            )
        )

    abilities = step.get("abilities") or []
    if abilities and len(abilities) < doctrine.minimum_abilities:
        violations.append(
            Violation(
                rule="minimumAbilities",
                offending=str(len(abilities)),
                fix=f"Name at least {doctrine.minimum_abilities} ability unlocked by this step.",
                severity=Severity.MAJOR,
            )
        )

    self_test = step.get("selfTest")
    if isinstance(self_test, Mapping) and not (self_test.get("challenge") and self_test.get("passCriteria")):
        violations.append(
            Violation(
                rule="passCondition",
                offending="selfTest",
                fix="The self-test needs both a challenge and pass criteria.",
                severity=Severity.MAJOR,
            )
        )
    return violations


def score_violations(violations: List[Violation]) -> int:
    penalty = sum(SEVERITY_WEIGHTS[violation.severity] for violation in violations)
    return max(0, 100 - penalty)


def score_content(text: str, doctrine: Doctrine = DEFAULT_DOCTRINE) -> int:
    """Score ``text`` from 0 to 100 against the doctrine's lexical rules."""
    return score_violations(list_violations(text, doctrine))


def verdict_for(score: int, doctrine: Doctrine = DEFAULT_DOCTRINE) -> QualityVerdict:
    if score >= doctrine.pass_threshold:
        return QualityVerdict.PASS
    if score >= doctrine.regenerate_threshold:
        return QualityVerdict.REGENERATE
    return QualityVerdict.FALLBACK


def regeneration_feedback(score: int, violations: List[Violation], doctrine: Doctrine = DEFAULT_DOCTRINE) -> str:
    """Build reviewer feedback that is appended to a regeneration prompt."""
    lines = [f"Quality score: {score}/100 (need {doctrine.pass_threshold}+)."]
    critical = [violation for violation in violations if violation.severity is Severity.CRITICAL]
    major = [violation for violation in violations if violation.severity is Severity.MAJOR]
    minor = [violation for violation in violations if violation.severity is Severity.MINOR]
    if critical:
        lines.append("CRITICAL ISSUES (must fix):")
        lines.extend(f"- {violation.fix}" for violation in critical)
    if major:
        lines.append("MAJOR ISSUES:")
        lines.extend(f"- {violation.fix}" for violation in major[:5])
    if minor and not (critical or major):
        lines.append("MINOR ISSUES:")
        lines.extend(f"- {violation.fix}" for violation in minor[:5])
    return "\n".join(lines)
