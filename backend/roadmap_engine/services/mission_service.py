"""Today's mission: a single session derived from the plan's current step."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from roadmap_engine.core.config import settings
from roadmap_engine.services import generation_gateway
from roadmap_engine.services.output_schemas import MissionAction, MissionOutput
from roadmap_engine.services.plan_model import (
    Mission,
    Plan,
    Step,
    StepStatus,
    current_step,
    get_ai_role,
    mission_from_output,
)

logger = logging.getLogger(__name__)


def build_mission_context(plan: Plan, step: Step) -> str:
    lines = [
        f"GOAL: {plan.goal}",
        f"CURRENT STEP ({step.order} of {len(plan.steps)}): {step.title}",
        f"TIMEFRAME: {step.timeframe or 'not set'}",
        f"DESCRIPTION: {step.description or 'none'}",
        f"METHOD: {step.method or 'none'}",
        f"PITFALLS: {'; '.join(step.pitfalls) or 'none'}",
        f"DONE WHEN: {step.done_when or 'not set'}",
        f"TIME SPENT SO FAR: {plan.total_time_spent} min",
        "Plan today's session. Return the mission JSON object.",
    ]
    return "\n".join(lines)


def fallback_mission(step: Step) -> MissionOutput:
    """Mission built from the step alone, respecting what the step allows."""
    allowed = step.allowed_content
    actions: List[MissionAction] = []
    if allowed.explanation:
        actions.append(
            MissionAction(
                order=len(actions) + 1,
                instruction=f'Write a 5-line summary of "{step.title}" from one trusted source, in your own words.',
                type="read",
            )
        )
    if allowed.practice:
        actions.append(
            MissionAction(
                order=len(actions) + 1,
                instruction="Solve 3 problems for this step without an example open and check each answer.",
                type="practice",
            )
        )
    actions.append(
        MissionAction(
            order=len(actions) + 1,
            instruction="Close all notes and write down what you can do now that you could not do yesterday.",
            type="test",
        )
    )
    return MissionOutput(
        title=f"Today: {step.title}",
        estimated_minutes=10 * len(actions),
        actions=actions,
        avoid=list(step.pitfalls[:2]),
        done_when=step.done_when or "Every action above has a written result.",
    )


def generate_mission(plan: Plan, *, client: Any = None, timeout: Optional[float] = None) -> Optional[Mission]:
    """Regenerate today's mission for the current step and store it on the plan.

    Returns ``None`` when the plan has no active step.
    """
    step = current_step(plan)
    if step is None or step.status is not StepStatus.CURRENT:
        plan.todays_mission = None
        return None

    role = get_ai_role("get_mission", step)
    result = generation_gateway.execute(
        role,
        build_mission_context(plan, step),
        client=client,
        timeout=timeout if timeout is not None else settings.generation_timeout_s,
    )
    if result.success and isinstance(result.model, MissionOutput):
        mission = mission_from_output(step, result.model, source="generated")
    else:
        logger.info("Mission generation fell back for step %s: %s", step.order, result.error)
        mission = mission_from_output(step, fallback_mission(step), source="fallback")

    plan.todays_mission = mission
    return mission
