"""Plan/Step/Mission data model, role resolution, and the step state machine."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Type
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from roadmap_engine.services.output_schemas import (
    DiagnosticResult,
    ExecutionResult,
    ExplanationOutput,
    MissionAction,
    MissionOutput,
    PracticeOutput,
    PracticeWithSolutionsOutput,
    ProgressCheckOutput,
    RoadmapOutput,
    SchemaModel,
    StrategyResult,
)

GoalCategoryType = Literal["test_prep", "skill_build", "learn_subject", "general"]
CompletionType = Literal["time_spent", "practice_done", "self_report", "quiz_passed"]


class StepStatus(str, Enum):
    LOCKED = "locked"
    CURRENT = "current"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class InvalidStepTransition(ValueError):
    """Raised when a step status change is not allowed by the state machine."""


ALLOWED_TRANSITIONS: Dict[StepStatus, frozenset] = {
    StepStatus.LOCKED: frozenset({StepStatus.CURRENT}),
    StepStatus.CURRENT: frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED}),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}

FINISHED_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED})


class AllowedContent(SchemaModel):
    explanation: bool = True
    practice: bool = True
    examples: bool = True
    full_solutions: bool = False


class CompletionCriteria(SchemaModel):
    type: CompletionType
    threshold: float = Field(default=1, ge=0)


class Step(SchemaModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    order: int = Field(..., ge=1)
    title: str
    description: str = ""
    timeframe: str = ""
    status: StepStatus = StepStatus.LOCKED
    allowed_content: AllowedContent = Field(default_factory=AllowedContent)
    completion_criteria: CompletionCriteria = Field(default_factory=lambda: CompletionCriteria(type="self_report"))
    pitfalls: List[str] = Field(default_factory=list)
    done_when: str = ""
    method: str = ""
    milestone: Optional[str] = None
    completed_at: Optional[datetime] = None


class Mission(SchemaModel):
    step_id: str
    title: str
    estimated_minutes: int = Field(..., ge=1)
    actions: List[MissionAction]
    avoid: List[str] = Field(default_factory=list)
    done_when: str
    source: Literal["generated", "fallback"] = "generated"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Plan(SchemaModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: Optional[str] = None
    goal: str
    category: GoalCategoryType = "general"
    steps: List[Step] = Field(default_factory=list)
    current_step_index: int = Field(default=0, ge=0)
    total_time_spent: int = Field(default=0, ge=0)
    todays_mission: Optional[Mission] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StepProgress(SchemaModel):
    """What the system has observed for one step; users never self-certify beyond self_reported."""

    minutes_spent: int = Field(default=0, ge=0)
    practice_done: int = Field(default=0, ge=0)
    self_reported: bool = False
    quiz_percent: Optional[float] = Field(default=None, ge=0, le=100)


class PlanView(SchemaModel):
    goal: str
    progress: int
    current_step: str
    next_milestone: str
    todays_mission: Optional[Mission] = None
    current_step_details: Optional[Step] = None


# ---------------------------------------------------------------------------
# Goal categories and step templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepTemplate:
    title: str
    description: str
    allowed_content: AllowedContent
    completion: CompletionType
    threshold: float


@dataclass(frozen=True)
class GoalCategory:
    type: GoalCategoryType
    template: Tuple[StepTemplate, ...]


_EXPLAIN_ONLY = AllowedContent(explanation=True, practice=False, examples=True, full_solutions=False)
_GUIDED_PRACTICE = AllowedContent(explanation=True, practice=True, examples=True, full_solutions=False)
_PRACTICE_ONLY = AllowedContent(explanation=False, practice=True, examples=False, full_solutions=False)
_REVIEW_WITH_SOLUTIONS = AllowedContent(explanation=True, practice=True, examples=True, full_solutions=True)

STEP_TEMPLATES: Dict[str, Tuple[StepTemplate, ...]] = {
    "learn_subject": (
        StepTemplate("Foundation", "Build the core vocabulary and mental model of {goal}.", _EXPLAIN_ONLY, "time_spent", 60),
        StepTemplate("Core concepts", "Work through the central ideas of {goal} with worked examples.", _GUIDED_PRACTICE, "practice_done", 5),
        StepTemplate("Application", "Apply {goal} to problems you have not seen before.", _PRACTICE_ONLY, "practice_done", 10),
        StepTemplate("Consolidation", "Check what stuck and close the remaining gaps in {goal}.", _REVIEW_WITH_SOLUTIONS, "quiz_passed", 80),
    ),
    "test_prep": (
        StepTemplate("Diagnostic check", "Find out which parts of {goal} you can already answer under time pressure.", _PRACTICE_ONLY, "quiz_passed", 50),
        StepTemplate("Targeted repair", "Fix the weakest topics for {goal} with focused explanations.", _GUIDED_PRACTICE, "practice_done", 8),
        StepTemplate("Timed practice", "Solve exam-style questions for {goal} against the clock.", _PRACTICE_ONLY, "practice_done", 15),
        StepTemplate("Final review", "Run a full mock exam for {goal} and review every mistake.", _REVIEW_WITH_SOLUTIONS, "quiz_passed", 80),
    ),
    "skill_build": (
        StepTemplate("Setup and first rep", "Prepare your tools and complete the smallest working version of {goal}.", _GUIDED_PRACTICE, "self_report", 1),
        StepTemplate("Deliberate drills", "Repeat the core moves of {goal} until they are automatic.", _PRACTICE_ONLY, "time_spent", 120),
        StepTemplate("Build a project", "Produce one complete piece of work that uses {goal}.", _GUIDED_PRACTICE, "self_report", 1),
        StepTemplate("Feedback loop", "Compare your work with a reference and fix what differs.", _REVIEW_WITH_SOLUTIONS, "practice_done", 3),
    ),
}

CATEGORY_KEYWORDS: Tuple[Tuple[GoalCategoryType, Tuple[str, ...]], ...] = (
    ("test_prep", ("exam", "test", "quiz", "midterm", "final", "sat", "gre", "gmat", "certification", "pass")),
    ("skill_build", ("build", "make", "create", "code", "program", "develop", "draw", "play", "cook", "write")),
    ("learn_subject", ("learn", "understand", "study", "master", "course", "subject", "theory")),
)


def categorize_goal(goal_text: str) -> GoalCategory:
    """Classify a goal by keyword; anything unmatched is ``general`` with the subject template."""
    words = set(_tokenize(goal_text))
    for category_type, keywords in CATEGORY_KEYWORDS:
        if words.intersection(keywords):
            return GoalCategory(type=category_type, template=STEP_TEMPLATES[category_type])
    return GoalCategory(type="general", template=STEP_TEMPLATES["learn_subject"])


def _tokenize(text: str) -> List[str]:
    cleaned = "".join(char.lower() if char.isalnum() else " " for char in text or "")
    return cleaned.split()


def template_for_position(category: GoalCategory, index: int, total: int) -> StepTemplate:
    """Map step ``index`` of ``total`` onto the category template by proportion."""
    templates = category.template
    if total <= 0:
        return templates[0]
    position = min(len(templates) - 1, index * len(templates) // total)
    return templates[position]


def completion_threshold(template: StepTemplate, duration_minutes: Optional[int] = None) -> float:
    if template.completion == "time_spent" and duration_minutes:
        return float(duration_minutes)
    return template.threshold


def step_window(index: int, total_steps: int, total_days: int) -> str:
    """Return the day label ("Day 3" or "Days 1-3") covered by step ``index``."""
    total_steps = max(1, total_steps)
    total_days = max(1, total_days)
    span = max(1, math.ceil(total_days / total_steps))
    start = min(total_days, index * span + 1)
    end = min(total_days, start + span - 1)
    if start >= end:
        return f"Day {start}"
    return f"Days {start}-{end}"


def build_steps_from_template(goal: str, total_days: int, category: Optional[GoalCategory] = None) -> List[Step]:
    """Create one locked-then-current step list straight from the goal's template."""
    category = category or categorize_goal(goal)
    templates = category.template
    steps: List[Step] = []
    for index, template in enumerate(templates):
        steps.append(
            Step(
                order=index + 1,
                title=template.title,
                description=template.description.format(goal=goal),
                timeframe=step_window(index, len(templates), total_days),
                status=StepStatus.CURRENT if index == 0 else StepStatus.LOCKED,
                allowed_content=template.allowed_content.model_copy(),
                completion_criteria=CompletionCriteria(type=template.completion, threshold=template.threshold),
                done_when=f"You meet the completion check for {template.title.lower()}.",
            )
        )
    return steps


# ---------------------------------------------------------------------------
# Role resolution
# ---------------------------------------------------------------------------

DEFAULT_CONSTRAINTS: Tuple[str, ...] = (
    "Stay inside the current step; never introduce material from locked steps.",
    "Every instruction names a concrete action the learner can start immediately.",
    "Return exactly one JSON object and nothing else.",
)

NO_FULL_SOLUTIONS_CONSTRAINT = (
    "No complete solutions or final answers: give hints and partial steps so the learner does the work."
)
NO_EXPLANATION_CONSTRAINT = "Do not explain theory in this step; point to practice instead."
NO_PRACTICE_CONSTRAINT = "Do not hand out practice problems in this step."
NO_EXAMPLES_CONSTRAINT = "Do not include worked examples in this step."


@dataclass(frozen=True)
class RoleConfig:
    """Per-call descriptor of what one generation call is allowed to do."""

    role: str
    action: str
    constraints: Tuple[str, ...]
    output_schema: Type[BaseModel]
    rules: Tuple[str, ...]
    max_tokens: int
    current_step: Optional[Step] = field(default=None, compare=False)

    def describe(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "action": self.action,
            "constraints": list(self.constraints),
            "rules": list(self.rules),
            "maxTokens": self.max_tokens,
            "outputSchema": self.output_schema.model_json_schema(by_alias=True),
        }


@dataclass(frozen=True)
class _ActionSpec:
    role: str
    schema: Type[BaseModel]
    rules: Tuple[str, ...]
    max_tokens: int


ACTION_SPECS: Dict[str, _ActionSpec] = {
    "create_roadmap": _ActionSpec(
        "roadmap_builder",
        RoadmapOutput,
        (
            "Order steps so each one depends only on earlier steps.",
            "Every step has a timeframe label and a done-when check.",
        ),
        800,
    ),
    "get_mission": _ActionSpec(
        "mission_generator",
        MissionOutput,
        (
            "Plan one session for today only.",
            "Each action is typed read, practice, review, create, or test.",
        ),
        400,
    ),
    "explain": _ActionSpec(
        "explainer",
        ExplanationOutput,
        ("Explain one concept from the current step.", "End with a question the learner answers without notes."),
        500,
    ),
    "practice": _ActionSpec(
        "practice_generator",
        PracticeOutput,
        ("Problems target the current step only.", "Order problems from easy to hard."),
        400,
    ),
    "check_progress": _ActionSpec(
        "progress_checker",
        ProgressCheckOutput,
        ("Judge readiness only from the evidence given.",),
        200,
    ),
    "diagnose": _ActionSpec(
        "diagnostic",
        DiagnosticResult,
        ("Classify the goal before prescribing anything.", "Name the root cause, not the symptom."),
        1000,
    ),
    "strategize": _ActionSpec(
        "strategy",
        StrategyResult,
        ("Pair every risk with its consequence.", "Success metrics must be observable."),
        1200,
    ),
    "execute": _ActionSpec(
        "execution",
        ExecutionResult,
        (
            "Only the current step gets full detail; later steps are previews.",
            "Every micro-task ends in something the learner can show or check.",
        ),
        2500,
    ),
}


def get_ai_role(action: str, current_step: Optional[Step] = None) -> RoleConfig:
    """Build the role descriptor for ``action``, merging step restrictions into the constraints."""
    spec = ACTION_SPECS.get(action)
    if spec is None:
        raise ValueError(f"Unknown action: {action!r}")

    allowed = current_step.allowed_content if current_step else AllowedContent()
    constraints = list(DEFAULT_CONSTRAINTS)
    if not allowed.full_solutions:
        constraints.append(NO_FULL_SOLUTIONS_CONSTRAINT)
    if not allowed.explanation:
        constraints.append(NO_EXPLANATION_CONSTRAINT)
    if not allowed.practice:
        constraints.append(NO_PRACTICE_CONSTRAINT)
    if not allowed.examples:
        constraints.append(NO_EXAMPLES_CONSTRAINT)
    if current_step is not None:
        constraints.append(f'Current step: "{current_step.title}". Do not go beyond it.')

    schema = spec.schema
    if action == "practice" and allowed.full_solutions:
        schema = PracticeWithSolutionsOutput

    return RoleConfig(
        role=spec.role,
        action=action,
        constraints=tuple(constraints),
        output_schema=schema,
        rules=spec.rules,
        max_tokens=spec.max_tokens,
        current_step=current_step,
    )


# ---------------------------------------------------------------------------
# Output validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    model: Optional[BaseModel] = None


def validate_output(output: Any, role: RoleConfig) -> ValidationResult:
    """Check ``output`` against the role's schema. Never raises."""
    if not isinstance(output, dict):
        return ValidationResult(valid=False, errors=["Output is not a JSON object"])
    try:
        model = role.output_schema.model_validate(output)
    except ValidationError as exc:
        return ValidationResult(valid=False, errors=[_format_error(error) for error in exc.errors()])
    return ValidationResult(valid=True, model=model)


def _format_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{location}: {error.get('msg', 'invalid value')}"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def transition_step(step: Step, new_status: StepStatus) -> Step:
    """Move ``step`` to ``new_status`` or raise ``InvalidStepTransition``."""
    allowed = ALLOWED_TRANSITIONS[step.status]
    if new_status not in allowed:
        raise InvalidStepTransition(f"Step {step.order} cannot move from {step.status.value} to {new_status.value}")
    step.status = new_status
    if new_status is StepStatus.COMPLETED:
        step.completed_at = datetime.now(timezone.utc)
    return step


def current_step(plan: Plan) -> Optional[Step]:
    if not plan.steps or plan.current_step_index >= len(plan.steps):
        return None
    return plan.steps[plan.current_step_index]


def is_finished(plan: Plan) -> bool:
    return bool(plan.steps) and all(step.status in FINISHED_STATUSES for step in plan.steps)


def progress_to_next_step(plan: Plan) -> Plan:
    """Complete the current step and unlock the next one, clearing today's mission."""
    return _advance(plan, StepStatus.COMPLETED)


def skip_current_step(plan: Plan, *, authorized: bool) -> Plan:
    """Skip the current step. Only the system may authorize a skip."""
    if not authorized:
        raise InvalidStepTransition("Skipping a step requires system authorization")
    return _advance(plan, StepStatus.SKIPPED)


def _advance(plan: Plan, finished_status: StepStatus) -> Plan:
    step = current_step(plan)
    if step is None or step.status in FINISHED_STATUSES:
        return plan

    transition_step(step, finished_status)
    next_index = plan.current_step_index + 1
    if next_index < len(plan.steps):
        transition_step(plan.steps[next_index], StepStatus.CURRENT)
        plan.current_step_index = next_index
    plan.todays_mission = None
    plan.last_activity_at = datetime.now(timezone.utc)
    return plan


def record_time_spent(plan: Plan, minutes: int) -> Plan:
    if minutes < 0:
        raise ValueError("minutes must be non-negative")
    plan.total_time_spent += minutes
    plan.last_activity_at = datetime.now(timezone.utc)
    return plan


def is_step_complete(step: Step, progress: StepProgress) -> bool:
    """Evaluate the step's completion criteria against system-observed progress."""
    criteria = step.completion_criteria
    if criteria.type == "time_spent":
        return progress.minutes_spent >= criteria.threshold
    if criteria.type == "practice_done":
        return progress.practice_done >= criteria.threshold
    if criteria.type == "quiz_passed":
        return progress.quiz_percent is not None and progress.quiz_percent >= criteria.threshold
    return progress.self_reported


def check_plan_invariants(plan: Plan) -> List[str]:
    """Return a description of every broken plan invariant (empty when the plan is consistent)."""
    problems: List[str] = []
    if not plan.steps:
        return ["plan has no steps"]
    cursor = plan.current_step_index
    if cursor >= len(plan.steps):
        return [f"cursor {cursor} is outside {len(plan.steps)} steps"]

    for index, step in enumerate(plan.steps):
        if index < cursor and step.status not in FINISHED_STATUSES:
            problems.append(f"step {step.order} is before the cursor but {step.status.value}")
        if index > cursor and step.status is not StepStatus.LOCKED:
            problems.append(f"step {step.order} is after the cursor but {step.status.value}")

    cursor_step = plan.steps[cursor]
    last_index = len(plan.steps) - 1
    if cursor_step.status in FINISHED_STATUSES and cursor != last_index:
        problems.append(f"step {cursor_step.order} under the cursor is finished but later steps remain")
    if cursor_step.status is StepStatus.LOCKED:
        problems.append(f"step {cursor_step.order} under the cursor is still locked")

    current_count = sum(1 for step in plan.steps if step.status is StepStatus.CURRENT)
    if current_count > 1:
        problems.append(f"{current_count} steps are current")
    return problems


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def progress_percent(plan: Plan) -> int:
    if not plan.steps:
        return 0
    completed = sum(1 for step in plan.steps if step.status is StepStatus.COMPLETED)
    return round(completed * 100 / len(plan.steps))


def get_next_milestone(plan: Plan) -> str:
    if is_finished(plan):
        return "Roadmap complete"
    for step in plan.steps[plan.current_step_index :]:
        if step.milestone:
            return step.milestone
    step = current_step(plan)
    if step is None:
        return "Generate a roadmap to get started"
    if plan.current_step_index == len(plan.steps) - 1:
        return f"Finish {step.title} to complete the roadmap"
    return f"Finish {step.title} to unlock {plan.steps[plan.current_step_index + 1].title}"


def get_current_view(plan: Plan) -> PlanView:
    step = current_step(plan)
    active = step if step is not None and step.status is StepStatus.CURRENT else None
    return PlanView(
        goal=plan.goal,
        progress=progress_percent(plan),
        current_step=active.title if active else ("Roadmap complete" if is_finished(plan) else "Not started"),
        next_milestone=get_next_milestone(plan),
        todays_mission=plan.todays_mission,
        current_step_details=active,
    )


def mission_from_output(step: Step, output: MissionOutput, *, source: Literal["generated", "fallback"]) -> Mission:
    return Mission(
        step_id=step.id,
        title=output.title,
        estimated_minutes=output.estimated_minutes,
        actions=list(output.actions),
        avoid=list(output.avoid),
        done_when=output.done_when,
        source=source,
    )
