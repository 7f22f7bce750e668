"""Phase 3: the detailed current step plus locked previews of the later steps."""
from __future__ import annotations

import re
from collections import Counter
from typing import List, Tuple

from roadmap_engine.services.diagnostic_phase import format_diagnostic_block
from roadmap_engine.services.doctrine import (
    DEFAULT_DOCTRINE,
    Doctrine,
    Violation,
    check_step_requirements,
    list_violations,
    score_violations,
)
from roadmap_engine.services.output_schemas import (
    CriticalWarning,
    CurrentStepDetail,
    DiagnosticResult,
    ExecutionResult,
    LockedStepPreview,
    MicroTask,
    SelfTest,
    StepResource,
    StepRisk,
    StrategyResult,
    TimeBreakdown,
)
from roadmap_engine.services.plan_model import categorize_goal, step_window, template_for_position
from roadmap_engine.services.strategy_phase import format_strategy_block

DEFAULT_DAILY_MINUTES = 20
MIN_DAILY_MINUTES = 5
MAX_DAILY_MINUTES = 720
MAX_TASK_MINUTES = 240

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(h(?:ou)?rs?|h\b|min(?:ute)?s?|m\b)", re.IGNORECASE)
_BARE_NUMBER = re.compile(r"\d+")


def calculate_step_count(diagnostic: DiagnosticResult) -> int:
    """Step count from scope (6/8/10), shortened for immediate goals and lengthened for long-term ones."""
    scope = diagnostic.goal.scope
    urgency = diagnostic.goal.urgency
    count = 6
    if scope == "moderate":
        count = 8
    elif scope == "broad":
        count = 10
    if urgency == "immediate":
        count = max(5, count - 1)
    elif urgency == "long_term":
        count = min(12, count + 2)
    return count


def daily_minutes(commitment: str) -> int:
    """Minutes per day from a commitment like "40 min/day", "1 hour/day" or "1h 30m"."""
    text = commitment or ""
    total = 0.0
    for amount, unit in _DURATION_PART.findall(text):
        total += float(amount) * (60 if unit.lower().startswith("h") else 1)
    if not total:
        match = _BARE_NUMBER.search(text)
        if not match:
            return DEFAULT_DAILY_MINUTES
        total = int(match.group())
    return max(MIN_DAILY_MINUTES, min(MAX_DAILY_MINUTES, int(round(total))))


def build_execution_context(
    diagnostic: DiagnosticResult,
    strategy: StrategyResult,
    step_count: int,
    max_chars: int = 4000,
) -> str:
    days = strategy.strategy.estimated_days
    return (
        "=== DIAGNOSIS ===\n"
        f"{format_diagnostic_block(diagnostic, max_chars)}\n\n"
        "=== STRATEGY ===\n"
        f"{format_strategy_block(strategy, max_chars)}\n\n"
        "=== REQUIREMENTS ===\n"
        f"- totalSteps must be exactly {step_count}: one current step and {step_count - 1} locked previews.\n"
        f"- estimatedDays must not exceed {days}.\n"
        f"- The current step covers {step_window(0, step_count, days)}; label method lines with days.\n"
        "Return the execution JSON object."
    )


def _preview_titles(topic: str, total_steps: int) -> List[str]:
    category = categorize_goal(topic)
    titles = [template_for_position(category, index, total_steps).title for index in range(total_steps)]
    seen: Counter = Counter()
    totals = Counter(titles)
    numbered: List[str] = []
    for title in titles:
        seen[title] += 1
        numbered.append(f"{title} (part {seen[title]})" if totals[title] > 1 else title)
    return numbered


def _padding_preview(order: int, title: str, topic: str) -> LockedStepPreview:
    return LockedStepPreview(
        order=order,
        phase="LATER",
        title=title,
        why_after_previous=f"Builds directly on step {order - 1}.",
        preview_abilities=[f"Apply {topic} one level further than step {order - 1}"],
    )


def reconcile_execution(
    execution: ExecutionResult,
    diagnostic: DiagnosticResult,
    strategy: StrategyResult,
    step_count: int,
) -> ExecutionResult:
    """Force the system-owned fields: step count, deadline, and the critical warning."""
    topic = diagnostic.goal.clarified
    previews = sorted(execution.locked_steps, key=lambda preview: preview.order)[: step_count - 1]
    if len(previews) < step_count - 1:
        titles = _preview_titles(topic, step_count)
        for index in range(len(previews) + 1, step_count):
            previews.append(_padding_preview(index + 1, titles[index], topic))
    renumbered = [
        preview.model_copy(update={"order": index + 2, "phase": "NEXT" if index == 0 else "LATER"})
        for index, preview in enumerate(previews)
    ]

    estimated_days = min(execution.estimated_days, strategy.strategy.estimated_days)
    deadline = diagnostic.goal.timeframe_days
    if deadline is not None:
        estimated_days = min(estimated_days, deadline)

    critical = strategy.risks.critical
    warning = CriticalWarning(
        warning=critical.warning,
        consequence=critical.consequence,
        prevention=critical.prevention or None,
        severity="CRITICAL",
    )
    current = execution.current_step.model_copy(update={"order": 1, "phase": "NOW"})
    return execution.model_copy(
        update={
            "total_steps": step_count,
            "estimated_days": estimated_days,
            "current_step": current,
            "locked_steps": renumbered,
            "critical_warning": warning,
        }
    )


def _session_labels(window_days: int) -> List[str]:
    if window_days >= 3:
        return ["Day 1", "Day 2", "Day 3"]
    return ["Session 1", "Session 2", "Session 3"]


def _fallback_sessions(goal_type: str, topic: str) -> Tuple[List[Tuple[str, str, str]], str, List[str]]:
    """Return (title, description, task type) per session, the done-when line, and common mistakes."""
    if goal_type == "test_prep":
        sessions = [
            ("Timed baseline", f"Open a past paper for {topic} and solve the first 5 questions with a 25-minute timer. Mark every answer.", "TEST"),
            ("Repair the weakest topic", "Go to the topic where you lost the most marks, rework each missed question from a worked example, then redo it without one.", "PRACTICE"),
            ("Timed re-test", "Close all notes and solve 5 fresh questions against the clock. Write the score at the top of the page.", "TEST"),
        ]
        done_when = "You score at least 3 out of 5 on a timed set of fresh questions."
        mistakes = [
            "Reading worked solutions before attempting the question, which hides what you cannot do alone",
            "Practicing without a timer, so the real exam pace comes as a shock",
        ]
    elif goal_type == "skill_build":
        sessions = [
            ("First working result", f"Set up your tools for {topic} and produce the smallest working result in one sitting. Save it.", "ACTION"),
            ("Rebuild from blank", "Rebuild the same result from a blank page without the guide. Write down every point where you got stuck.", "PRACTICE"),
            ("Own variation", "Add one variation of your own, then compare it with a reference and fix the differences.", "TEST"),
        ]
        done_when = "You rebuild the first result from a blank page in under 30 minutes without a guide."
        mistakes = [
            "Copying along with a tutorial and calling the result your own",
            "Polishing one detail for hours instead of finishing a rough complete version",
        ]
    else:
        sessions = [
            ("Core ideas", f'Go to youtube.com and search "{topic} beginner tutorial". Watch one video under 15 minutes and write 3 key ideas in your own words.', "LEARN"),
            ("Recall check", "Close your notes and write everything you remember about those 3 ideas. Compare with your notes and mark what you missed.", "TEST"),
            ("First problems", f"Solve 5 practice problems on {topic} without an example open, then check each answer.", "PRACTICE"),
        ]
        done_when = f"You explain the 3 core ideas of {topic} out loud for 2 minutes without notes."
        mistakes = [
            "Switching between several tutorials, so no single explanation is finished",
            "Highlighting text instead of writing ideas in your own words",
        ]
    return sessions, done_when, mistakes


def fallback_execution(diagnostic: DiagnosticResult, strategy: StrategyResult) -> ExecutionResult:
    """Deterministic execution plan whose first step covers the first window of the timeframe."""
    topic = diagnostic.goal.clarified
    step_count = calculate_step_count(diagnostic)
    days = strategy.strategy.estimated_days
    if diagnostic.goal.timeframe_days is not None:
        days = min(days, diagnostic.goal.timeframe_days)
    minutes = daily_minutes(strategy.strategy.daily_commitment)
    task_minutes = min(MAX_TASK_MINUTES, minutes)
    window = step_window(0, step_count, days)
    window_days = max(1, -(-days // step_count))
    labels = _session_labels(window_days)
    sessions, done_when, mistakes = _fallback_sessions(diagnostic.goal.type, topic)
    critical = strategy.risks.critical

    micro_tasks = [
        MicroTask(
            order=index + 1,
            title=title,
            description=description,
            task_type=task_type,
            duration=task_minutes,
            verification_method="Keep the written output from this session.",
            proof_required=task_type == "TEST",
        )
        for index, (title, description, task_type) in enumerate(sessions)
    ]
    method = "\n".join(f"{label}: {description}" for label, (_, description, _) in zip(labels, sessions))

    current = CurrentStepDetail(
        title="Build the foundation",
        description=f"Set up the base every later step of {topic} depends on.",
        why_first="Every later step builds on this one; gaps here make each following step slower.",
        method=method,
        time_breakdown=TimeBreakdown(
            daily=f"{minutes} min",
            total=f"About {minutes * len(sessions)} min over {len(sessions)} sessions",
            flexible="A session may move to the next day, but keep the order.",
        ),
        risk=StepRisk(warning=critical.warning, consequence=critical.consequence),
        common_mistakes=mistakes,
        done_when=done_when,
        self_test=SelfTest(
            challenge=f"Without notes, write down the 3 most important ideas of {topic} and one example of each.",
            pass_criteria="All 3 ideas are correct and each has a working example.",
            fail_criteria="Redo the recall session before moving on.",
        ),
        abilities=[
            f"Explain the core ideas of {topic} in your own words",
            "Solve a first set of problems without a worked example",
        ],
        milestone=strategy.milestones[0].title if strategy.milestones else None,
        duration=minutes * len(sessions),
        timeframe=window,
        resources=[
            StepResource(type="video", title=f"{topic} explained", search_query=f"{topic} explained", priority=1),
            StepResource(type="exercise", title=f"{topic} practice problems", search_query=f"{topic} practice problems", priority=2),
        ],
        micro_tasks=micro_tasks,
    )

    titles = _preview_titles(topic, step_count)
    previews = [
        LockedStepPreview(
            order=index + 1,
            phase="NEXT" if index == 1 else "LATER",
            title=titles[index],
            why_after_previous=f"Needs the results of step {index}.",
            preview_abilities=[f"Apply {topic} one level further than step {index}"],
            estimated_duration=minutes * len(sessions),
        )
        for index in range(1, step_count)
    ]

    return ExecutionResult(
        title=f"{topic}: {step_count}-step plan",
        total_steps=step_count,
        estimated_days=days,
        daily_commitment=strategy.strategy.daily_commitment,
        total_minutes=days * minutes,
        current_step=current,
        locked_steps=previews,
        critical_warning=CriticalWarning(
            warning=critical.warning,
            consequence=critical.consequence,
            prevention=critical.prevention or None,
        ),
    )


def execution_text(execution: ExecutionResult) -> str:
    """User-facing text of the current step, one entry per line, for lexical scoring."""
    step = execution.current_step
    parts = [
        execution.title,
        step.title,
        step.description,
        step.why_first,
        step.method,
        step.done_when,
        step.self_test.challenge,
        step.self_test.pass_criteria,
        *step.common_mistakes,
        *step.abilities,
    ]
    for task in step.micro_tasks:
        parts.extend([task.title, task.description])
    return "\n".join(part for part in parts if part)


def score_execution(execution: ExecutionResult, doctrine: Doctrine = DEFAULT_DOCTRINE) -> Tuple[int, List[Violation]]:
    violations = list_violations(execution_text(execution), doctrine)
    violations.extend(check_step_requirements(execution.current_step.model_dump(by_alias=True), doctrine))
    return score_violations(violations), violations
