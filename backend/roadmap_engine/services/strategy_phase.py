"""Phase 2: turn the diagnosis into a transformation, risks, milestones and pacing."""
from __future__ import annotations

from typing import Dict, List, Tuple

from roadmap_engine.services.diagnostic_phase import bounded_block, format_diagnostic_block
from roadmap_engine.services.output_schemas import (
    CommonRisk,
    CriticalRisk,
    DiagnosticResult,
    LearningStrategy,
    Milestone,
    RiskAssessment,
    StrategyResult,
    SuccessDefinition,
    Transformation,
)

DEFAULT_DAYS_BY_URGENCY: Dict[str, int] = {"immediate": 7, "short_term": 14, "long_term": 30}
MAX_PLAN_DAYS = 365
PACING_BY_URGENCY: Dict[str, str] = {"immediate": "intensive", "short_term": "moderate", "long_term": "relaxed"}
COMMITMENT_BY_URGENCY: Dict[str, str] = {
    "immediate": "45-60 min/day",
    "short_term": "30-45 min/day",
    "long_term": "15-20 min/day",
}

# (critical warning, consequence, prevention) per goal type.
_CRITICAL_RISKS: Dict[str, Tuple[str, str, str]] = {
    "test_prep": (
        "Re-reading notes instead of solving timed exam questions",
        "The material looks familiar, but you freeze when the clock is running",
        "Every session ends with at least three questions solved against a timer",
    ),
    "skill_build": (
        "Following tutorials without ever building something alone",
        "You can copy along but cannot start from a blank page",
        "Each step ends with one piece of work produced without a guide open",
    ),
}
_DEFAULT_CRITICAL_RISK = (
    "Skipping the fundamentals to rush ahead",
    "Gaps in the basics turn every later topic into confusion",
    "Pass each step's self-test before opening the next one",
)


def build_strategy_context(diagnostic: DiagnosticResult, max_chars: int = 4000) -> str:
    return (
        "=== DIAGNOSIS ===\n"
        f"{format_diagnostic_block(diagnostic, max_chars)}\n\n"
        "Build the strategy for this learner. Return the strategy JSON object."
    )


def deadline_days(diagnostic: DiagnosticResult) -> int:
    """Plan length in days: the learner's deadline, or a default by urgency, never more than a year."""
    days = diagnostic.goal.timeframe_days or DEFAULT_DAYS_BY_URGENCY.get(diagnostic.goal.urgency, 14)
    return min(MAX_PLAN_DAYS, days)


def reconcile_strategy(strategy: StrategyResult, diagnostic: DiagnosticResult) -> StrategyResult:
    """Clamp the estimate to the learner's deadline."""
    limit = diagnostic.goal.timeframe_days
    if limit is None or strategy.strategy.estimated_days <= limit:
        return strategy
    learning = strategy.strategy.model_copy(update={"estimated_days": limit})
    return strategy.model_copy(update={"strategy": learning})


def fallback_strategy(diagnostic: DiagnosticResult) -> StrategyResult:
    """Deterministic strategy derived from the diagnostic."""
    goal = diagnostic.goal
    topic = goal.clarified
    days = deadline_days(diagnostic)
    warning, consequence, prevention = _CRITICAL_RISKS.get(goal.type, _DEFAULT_CRITICAL_RISK)

    if goal.type == "test_prep":
        looks_like = f"You sit a full timed practice paper for {topic} and finish it with marks to spare."
        metrics = ["Score 80% or more on a timed practice paper", "Finish every paper inside the time limit"]
    elif goal.type == "skill_build":
        looks_like = f"You produce a complete piece of work using {topic} without a tutorial open."
        metrics = ["One finished project you can show", "A 20-minute build from a blank page without help"]
    else:
        looks_like = f"You explain the core ideas of {topic} without notes and apply them to new problems."
        metrics = ["Explain each core idea out loud in under two minutes", "Solve 8 of 10 unseen practice problems"]

    milestones: List[Milestone] = [
        Milestone(
            order=1,
            title="Foundation in place",
            description=f"The core ideas of {topic} are written in your own words",
            marker="You pass the first self-test without notes",
            unlocks="Practice on unseen problems",
        ),
        Milestone(
            order=2,
            title="Independent practice",
            description="Problems are solved without a worked example open",
            marker="8 of 10 practice problems correct on the first try",
            unlocks="Full timed review",
        ),
    ]
    if days > 14:
        milestones.append(
            Milestone(
                order=3,
                title="Ready to apply",
                description=f"{topic} holds up under realistic conditions",
                marker=metrics[0],
                unlocks="Maintenance practice",
            )
        )

    return StrategyResult(
        transformation=Transformation(
            vision=f"Apply {topic} with confidence when it counts.",
            before_state="Scattered knowledge and no fixed order of work",
            after_state="A tested, repeatable grasp of the material",
            narrative=f"You move from the fundamentals of {topic} to independent practice, one checked step at a time.",
            identity="Someone who practices actively and checks their own work",
        ),
        success=SuccessDefinition(
            looks_like=looks_like,
            metrics=metrics,
            abilities=[f"Explain the core ideas of {topic}", "Solve unseen problems without a worked example"],
            out_of_scope=["Advanced edge cases", "Topics beyond the stated goal"],
        ),
        milestones=milestones,
        risks=RiskAssessment(
            critical=CriticalRisk(warning=warning, consequence=consequence, prevention=prevention),
            common=[
                CommonRisk(
                    mistake="Collecting resources instead of working through one",
                    consequence="Hours pass with nothing produced",
                    prevention="Pick one resource per step and finish it",
                ),
                CommonRisk(
                    mistake="Checking answers before finishing an attempt",
                    consequence="You never find out what you can do unaided",
                    prevention="Commit to an answer first, then compare",
                ),
            ],
            recovery_path="After a missed day, redo the last self-test before starting new material.",
        ),
        strategy=LearningStrategy(
            approach="Short explanation, then immediate practice, then a self-test without notes",
            daily_commitment=COMMITMENT_BY_URGENCY.get(goal.urgency, "30-45 min/day"),
            estimated_days=days,
            pacing=PACING_BY_URGENCY.get(goal.urgency, "moderate"),
            focus_areas=list(diagnostic.gaps.critical[:3]),
        ),
    )


def format_strategy_block(strategy: StrategyResult, max_chars: int = 4000) -> str:
    risks = strategy.risks
    lines = [
        f"VISION: {strategy.transformation.vision}",
        f"NARRATIVE: {strategy.transformation.narrative}",
        f"SUCCESS LOOKS LIKE: {strategy.success.looks_like}",
        f"SUCCESS METRICS: {'; '.join(strategy.success.metrics)}",
        f"OUT OF SCOPE: {', '.join(strategy.success.out_of_scope) or 'nothing listed'}",
        f"CRITICAL WARNING: {risks.critical.warning} -> {risks.critical.consequence}",
        f"COMMON MISTAKES: {'; '.join(f'{risk.mistake} -> {risk.consequence}' for risk in risks.common)}",
        f"APPROACH: {strategy.strategy.approach}",
        f"DAILY COMMITMENT: {strategy.strategy.daily_commitment}",
        f"ESTIMATED DAYS: {strategy.strategy.estimated_days}",
        f"PACING: {strategy.strategy.pacing}",
        f"MILESTONES: {' -> '.join(milestone.title for milestone in strategy.milestones)}",
    ]
    return bounded_block("\n".join(lines), max_chars)
