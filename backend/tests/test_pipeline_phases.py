from __future__ import annotations

import pytest

from roadmap_engine.services.diagnostic_phase import (
    PLACEHOLDER_GOAL,
    bounded_block,
    build_diagnostic_context,
    detect_timeframe_days,
    fallback_diagnostic,
    goal_focus,
    reconcile_diagnostic,
)
from roadmap_engine.services.collaborators import InputContext, normalize_goal_text
from roadmap_engine.services.execution_phase import (
    MAX_TASK_MINUTES,
    calculate_step_count,
    daily_minutes,
    fallback_execution,
    reconcile_execution,
)
from roadmap_engine.services.output_schemas import DiagnosticResult, ExecutionResult, StrategyResult
from roadmap_engine.services.strategy_phase import fallback_strategy, reconcile_strategy


@pytest.mark.parametrize(
    "text, days",
    [
        ("pass my calculus exam in 2 weeks", 14),
        ("learn Spanish in three months", 90),
        ("finish the course in a month", 30),
        ("30 minutes a day for 3 weeks", 21),
        ("practice 3 days a week", None),
        ("ace the quiz tomorrow", 1),
        ("get ready for the interview next week", 7),
        ("learn chess", None),
        ("master the violin in 500 years", 3650),
        ("", None),
    ],
)
def test_detect_timeframe_days(text: str, days) -> None:
    assert detect_timeframe_days(text) == days


@pytest.mark.parametrize(
    "goal, focus",
    [
        ("I want to pass my calculus exam in 2 weeks", "pass my calculus exam"),
        ("help me learn guitar by next month", "learn guitar"),
        ("build a chess engine", "build a chess engine"),
        ("", PLACEHOLDER_GOAL),
    ],
)
def test_goal_focus(goal: str, focus: str) -> None:
    assert goal_focus(goal) == focus


def test_normalize_goal_text() -> None:
    assert normalize_goal_text("  pass   my exam!!  ") == "pass my exam"


def test_bounded_block_marks_the_cut() -> None:
    assert bounded_block("abcdefghij", 6) == "abc..."
    assert bounded_block("short", 100) == "short"


def test_calculus_fallback_diagnostic() -> None:
    diagnostic = fallback_diagnostic("pass my calculus exam in 2 weeks")

    assert diagnostic.goal.type == "test_prep"
    assert diagnostic.goal.urgency == "short_term"
    assert diagnostic.goal.scope == "narrow"
    assert diagnostic.goal.timeframe_days == 14
    assert diagnostic.goal.clarified == "pass my calculus exam"


def test_fallback_diagnostic_uses_analyzed_material() -> None:
    material = InputContext(topic="Derivatives", prerequisites=["limits"], focus_areas=["chain rule"])

    diagnostic = fallback_diagnostic("learn derivatives", material)

    assert diagnostic.gaps.critical[0] == "chain rule"
    assert diagnostic.prerequisites.required == ["limits"]
    assert "Derivatives" in diagnostic.user.context


def test_diagnostic_context_includes_bounded_blocks() -> None:
    context = build_diagnostic_context(
        "pass my calculus exam in 2 weeks",
        subject="math",
        memory_context="x" * 50,
        max_chars=20,
    )

    assert "DEADLINE DETECTED: 14 days" in context
    assert "SUBJECT: math" in context
    assert "x" * 17 + "..." in context
    assert "x" * 18 not in context


def test_reconcile_diagnostic_owns_goal_fields(diagnostic_payload) -> None:
    diagnostic_payload["goal"]["timeframeDays"] = None
    generated = DiagnosticResult.model_validate(diagnostic_payload)

    reconciled = reconcile_diagnostic(generated, "pass my calculus exam in 2 weeks")

    assert reconciled.goal.original == "pass my calculus exam in 2 weeks"
    assert reconciled.goal.type == "test_prep"
    assert reconciled.goal.timeframe_days == 14
    assert reconciled.goal.clarified == "Pass the calculus exam"


def test_deadline_in_goal_overrides_generated_timeframe(diagnostic_payload) -> None:
    diagnostic_payload["goal"].update({"timeframeDays": 60, "urgency": "long_term"})
    generated = DiagnosticResult.model_validate(diagnostic_payload)

    reconciled = reconcile_diagnostic(generated, "pass my calculus exam in 2 weeks")

    assert reconciled.goal.timeframe_days == 14
    assert reconciled.goal.urgency == "short_term"


def test_generated_timeframe_kept_when_goal_has_no_deadline(diagnostic_payload) -> None:
    diagnostic_payload["goal"].update({"timeframeDays": 60, "urgency": "long_term"})
    generated = DiagnosticResult.model_validate(diagnostic_payload)

    reconciled = reconcile_diagnostic(generated, "pass my calculus exam")

    assert reconciled.goal.timeframe_days == 60
    assert reconciled.goal.urgency == "long_term"


def test_general_goal_keeps_generated_type(diagnostic_payload) -> None:
    diagnostic_payload["goal"]["type"] = "hobby"
    generated = DiagnosticResult.model_validate(diagnostic_payload)

    reconciled = reconcile_diagnostic(generated, "get better at chess openings")

    assert reconciled.goal.type == "hobby"


@pytest.mark.parametrize(
    "goal, steps",
    [
        ("pass my calculus exam in 2 weeks", 6),
        ("ace the quiz tomorrow", 5),
        ("learn chess", 8),
        ("become fluent in Spanish in 2 years", 12),
    ],
)
def test_step_count_follows_scope_and_urgency(goal: str, steps: int) -> None:
    assert calculate_step_count(fallback_diagnostic(goal)) == steps


def test_strategy_estimate_is_clamped_to_deadline(diagnostic_payload, strategy_payload) -> None:
    diagnostic = DiagnosticResult.model_validate(diagnostic_payload)
    generated = StrategyResult.model_validate(strategy_payload)

    assert reconcile_strategy(generated, diagnostic).strategy.estimated_days == 14

    open_ended = diagnostic.model_copy(update={"goal": diagnostic.goal.model_copy(update={"timeframe_days": None})})
    assert reconcile_strategy(generated, open_ended).strategy.estimated_days == 21


def test_fallback_strategy_for_long_goal_stays_within_a_year() -> None:
    strategy = fallback_strategy(fallback_diagnostic("become fluent in Spanish in 2 years"))

    assert strategy.strategy.estimated_days == 365
    assert strategy.strategy.pacing == "relaxed"
    assert len(strategy.milestones) == 3


def test_fallback_strategy_for_short_goal() -> None:
    strategy = fallback_strategy(fallback_diagnostic("pass my calculus exam in 2 weeks"))

    assert strategy.strategy.estimated_days == 14
    assert strategy.strategy.daily_commitment == "30-45 min/day"
    assert strategy.risks.critical.severity == "CRITICAL"
    assert len(strategy.milestones) == 2


def test_calculus_fallback_execution() -> None:
    diagnostic = fallback_diagnostic("pass my calculus exam in 2 weeks")
    execution = fallback_execution(diagnostic, fallback_strategy(diagnostic))

    assert execution.total_steps == 6
    assert execution.estimated_days == 14
    assert execution.current_step.timeframe == "Days 1-3"
    assert execution.current_step.method.startswith("Day 1: ")
    assert [preview.order for preview in execution.locked_steps] == [2, 3, 4, 5, 6]
    assert [preview.phase for preview in execution.locked_steps] == ["NEXT"] + ["LATER"] * 4


def test_fallback_execution_for_one_day_uses_sessions() -> None:
    diagnostic = fallback_diagnostic("ace the quiz tomorrow")
    execution = fallback_execution(diagnostic, fallback_strategy(diagnostic))

    assert execution.current_step.timeframe == "Day 1"
    assert execution.current_step.method.startswith("Session 1: ")


@pytest.mark.parametrize(
    "commitment, minutes",
    [
        ("40 min/day", 40),
        ("1 hour/day", 60),
        ("1.5 hours a day", 90),
        ("1h 30m", 90),
        ("2 hrs", 120),
        ("30-45 min/day", 45),
        ("45 minutes", 45),
        ("25", 25),
        ("every evening", 20),
        ("2 min", 5),
        ("20 hours a day", 720),
    ],
)
def test_daily_minutes_reads_units(commitment: str, minutes: int) -> None:
    assert daily_minutes(commitment) == minutes


@pytest.mark.parametrize("commitment", ["300 min/day", "6 hours/day"])
def test_fallback_execution_caps_session_length(commitment: str) -> None:
    diagnostic = fallback_diagnostic("pass my calculus exam in 2 weeks")
    strategy = fallback_strategy(diagnostic)
    strategy = strategy.model_copy(
        update={"strategy": strategy.strategy.model_copy(update={"daily_commitment": commitment})}
    )

    execution = fallback_execution(diagnostic, strategy)

    assert [task.duration for task in execution.current_step.micro_tasks] == [MAX_TASK_MINUTES] * 3
    assert execution.total_minutes == 14 * daily_minutes(commitment)


def test_reconcile_execution_trims_previews_and_forces_warning(
    diagnostic_payload, strategy_payload, execution_payload
) -> None:
    execution_payload["lockedSteps"] = [
        {"order": order, "phase": "LATER", "title": f"Step {order}"} for order in range(9, 1, -1)
    ]
    execution_payload["criticalWarning"] = {"warning": "Sleep less", "consequence": "Nothing"}
    diagnostic = DiagnosticResult.model_validate(diagnostic_payload)
    strategy = StrategyResult.model_validate(strategy_payload)

    reconciled = reconcile_execution(ExecutionResult.model_validate(execution_payload), diagnostic, strategy, 6)

    assert reconciled.total_steps == 6
    assert [preview.title for preview in reconciled.locked_steps] == ["Step 2", "Step 3", "Step 4", "Step 5", "Step 6"]
    assert reconciled.locked_steps[0].phase == "NEXT"
    assert reconciled.estimated_days == 14
    assert reconciled.critical_warning.warning == strategy_payload["risks"]["critical"]["warning"]


def test_reconcile_execution_respects_strategy_estimate(
    diagnostic_payload, strategy_payload, execution_payload
) -> None:
    diagnostic_payload["goal"]["timeframeDays"] = None
    execution_payload["estimatedDays"] = 30
    diagnostic = DiagnosticResult.model_validate(diagnostic_payload)
    strategy = StrategyResult.model_validate(strategy_payload)

    reconciled = reconcile_execution(ExecutionResult.model_validate(execution_payload), diagnostic, strategy, 6)

    assert reconciled.estimated_days == strategy_payload["strategy"]["estimatedDays"]
