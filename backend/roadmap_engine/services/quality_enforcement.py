"""Mechanical rewrite of vague instructions in an accepted execution plan.

Lines that open with a vague verb ("Learn the basics", "Day 2: Review chapter 1") are
replaced with a template that names where to go, what to produce and how to check it.
Only the goal string and the line's existing day label are substituted, and no template
opens with a vague verb, so running the rewrite twice changes nothing the second time.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from roadmap_engine.services.output_schemas import ExecutionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VagueOpenerRule:
    pattern: re.Pattern
    kind: str


@dataclass(frozen=True)
class RewriteTemplate:
    instruction: str
    verification: str


def _rule(kind: str, *openers: str) -> VagueOpenerRule:
    alternatives = "|".join(re.escape(opener) for opener in openers)
    return VagueOpenerRule(pattern=re.compile(rf"^(?:{alternatives})\b", re.IGNORECASE), kind=kind)


DEFAULT_VAGUE_OPENER_RULES: Tuple[VagueOpenerRule, ...] = (
    _rule(
        "absorb",
        "learn",
        "study",
        "understand",
        "explore",
        "familiarize",
        "get familiar",
        "look into",
        "read about",
        "research",
        "know",
    ),
    _rule("practice", "practice", "practise", "work on", "drill", "keep practicing"),
    _rule("review", "review", "revise", "go over", "revisit", "brush up"),
)

REWRITE_TEMPLATES: Dict[str, RewriteTemplate] = {
    "absorb": RewriteTemplate(
        instruction=(
            'Go to youtube.com and search "{goal} beginner tutorial". Watch one video under 15 minutes '
            "and write 3 key concepts in a notes file."
        ),
        verification="The notes file lists 3 key concepts in your own words.",
    ),
    "practice": RewriteTemplate(
        instruction=(
            "Open a blank document and produce 5 worked examples that apply {goal}. "
            "Check each one against a trusted answer source and mark every mistake."
        ),
        verification="All 5 examples are checked and every mistake is marked.",
    ),
    "review": RewriteTemplate(
        instruction=(
            "Close all notes and set a 10-minute timer. Write everything you remember about {goal}, "
            "then compare with your notes and highlight 2 gaps."
        ),
        verification="You have highlighted at least 2 gaps to revisit.",
    ),
}

DONE_WHEN_TEMPLATE = (
    "You can explain the 3 core concepts of {goal} out loud for 2 minutes without notes, "
    "recorded so you can check it."
)

_LABEL = re.compile(
    r"^\s*(?:[-*•]\s*)?(?:(?:day|days|session|week|weeks|step)\s+\d+(?:\s*[-–]\s*\d+)?\s*[:.)-]\s*)?",
    re.IGNORECASE,
)


def _split_label(line: str) -> Tuple[str, str]:
    match = _LABEL.match(line)
    label = match.group(0) if match else ""
    return label, line[len(label) :]


def vague_kind(text: str, rules: Tuple[VagueOpenerRule, ...] = DEFAULT_VAGUE_OPENER_RULES) -> Optional[str]:
    """Return the rule kind when ``text`` (after any day label) opens with a vague verb."""
    _, body = _split_label(text or "")
    body = body.lstrip()
    for rule in rules:
        if rule.pattern.match(body):
            return rule.kind
    return None


def _clean_goal(goal: str) -> str:
    return " ".join((goal or "").split()) or "this topic"


def rewrite_line(line: str, goal: str, rules: Tuple[VagueOpenerRule, ...] = DEFAULT_VAGUE_OPENER_RULES) -> str:
    kind = vague_kind(line, rules)
    if kind is None:
        return line
    label, _ = _split_label(line)
    return f"{label}{REWRITE_TEMPLATES[kind].instruction.format(goal=_clean_goal(goal))}"


def enforce_actionability(
    execution: ExecutionResult,
    goal: str,
    rules: Tuple[VagueOpenerRule, ...] = DEFAULT_VAGUE_OPENER_RULES,
) -> Tuple[ExecutionResult, int]:
    """Rewrite vague method lines, micro-task descriptions and the done-when line.

    Returns the rewritten plan and the number of rewrites applied.
    """
    step = execution.current_step
    rewrites = 0

    method_lines: List[str] = []
    for line in step.method.split("\n"):
        rewritten = rewrite_line(line, goal, rules)
        rewrites += rewritten != line
        method_lines.append(rewritten)

    tasks = []
    for task in step.micro_tasks:
        kind = vague_kind(task.description, rules)
        if kind is None:
            tasks.append(task)
            continue
        rewrites += 1
        template = REWRITE_TEMPLATES[kind]
        tasks.append(
            task.model_copy(
                update={
                    "description": rewrite_line(task.description, goal, rules),
                    "verification_method": template.verification,
                }
            )
        )

    done_when = step.done_when
    if vague_kind(done_when, rules) is not None:
        label, _ = _split_label(done_when)
        done_when = f"{label}{DONE_WHEN_TEMPLATE.format(goal=_clean_goal(goal))}"
        rewrites += 1

    if rewrites:
        logger.info("Rewrote %s vague instruction(s) in the current step", rewrites)
    updated = step.model_copy(update={"method": "\n".join(method_lines), "micro_tasks": tasks, "done_when": done_when})
    return execution.model_copy(update={"current_step": updated}), rewrites
