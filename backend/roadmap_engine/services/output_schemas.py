"""Pydantic schemas for every structured document the generation service may return.

Generated payloads are untrusted: they are parsed into plain dicts first and only become
one of these models after ``validate_output`` accepts them. Field names are snake_case in
Python and camelCase on the wire.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

GoalType = Literal["learn_subject", "test_prep", "skill_build", "project", "career", "hobby"]
Urgency = Literal["immediate", "short_term", "long_term"]
Scope = Literal["narrow", "moderate", "broad"]
UserLevel = Literal["absolute_beginner", "beginner", "intermediate", "advanced"]
Pacing = Literal["intensive", "moderate", "relaxed"]
MissionActionType = Literal["read", "practice", "review", "create", "test"]
MicroTaskType = Literal["ACTION", "LEARN", "PRACTICE", "TEST", "REFLECT"]


class SchemaModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Single-purpose roles bound to a step
# ---------------------------------------------------------------------------


class RoadmapStepDraft(SchemaModel):
    order: int = Field(..., ge=1)
    title: NonEmptyStr
    timeframe: NonEmptyStr
    description: NonEmptyStr
    method: str = ""
    avoid: List[str] = Field(default_factory=list)
    done_when: NonEmptyStr


class RoadmapOutput(SchemaModel):
    goal: NonEmptyStr
    total_duration: NonEmptyStr
    steps: List[RoadmapStepDraft] = Field(..., min_length=2)
    overall_pitfalls: List[str] = Field(default_factory=list)
    success_looks_like: NonEmptyStr


class MissionAction(SchemaModel):
    order: int = Field(..., ge=1)
    instruction: NonEmptyStr
    type: MissionActionType


class MissionOutput(SchemaModel):
    title: NonEmptyStr
    estimated_minutes: int = Field(..., ge=1, le=240)
    actions: List[MissionAction] = Field(..., min_length=1)
    avoid: List[str] = Field(default_factory=list)
    done_when: NonEmptyStr


class ExplanationPoint(SchemaModel):
    point: NonEmptyStr
    why: NonEmptyStr


class ExplanationOutput(SchemaModel):
    concept: NonEmptyStr
    core_idea: NonEmptyStr
    breakdown: List[ExplanationPoint] = Field(..., min_length=1)
    common_mistake: NonEmptyStr
    check_yourself: NonEmptyStr


class PracticeProblem(SchemaModel):
    """A practice problem for a step that does not allow full solutions."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    id: NonEmptyStr
    problem: NonEmptyStr
    difficulty: Literal["easy", "medium", "hard"]
    hint: Optional[str] = None


class PracticeProblemWithSolution(PracticeProblem):
    answer: Optional[str] = None


class PracticeOutput(SchemaModel):
    problems: List[PracticeProblem] = Field(..., min_length=1)
    focus_area: NonEmptyStr


class PracticeWithSolutionsOutput(SchemaModel):
    problems: List[PracticeProblemWithSolution] = Field(..., min_length=1)
    focus_area: NonEmptyStr


class ProgressCheckOutput(SchemaModel):
    ready: bool
    reason: NonEmptyStr
    suggestion: NonEmptyStr


# ---------------------------------------------------------------------------
# Pipeline phase 1: diagnostic
# ---------------------------------------------------------------------------


class GoalAnalysis(SchemaModel):
    original: str = ""
    clarified: NonEmptyStr
    type: GoalType
    urgency: Urgency
    scope: Scope
    timeframe_days: Optional[int] = Field(default=None, ge=1, le=3650)


class UserAssessment(SchemaModel):
    inferred_level: UserLevel
    prior_knowledge: List[str] = Field(default_factory=list)
    context: str = ""
    constraints: List[str] = Field(default_factory=list)


class KnowledgeGaps(SchemaModel):
    critical: List[NonEmptyStr] = Field(..., min_length=1)
    important: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    priority_order: List[NonEmptyStr] = Field(..., min_length=1)


class Prerequisites(SchemaModel):
    required: List[str] = Field(default_factory=list)
    recommended: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)


class Diagnosis(SchemaModel):
    why_stuck: NonEmptyStr
    false_beliefs: List[str] = Field(default_factory=list)
    over_focusing: List[str] = Field(default_factory=list)
    neglecting: List[str] = Field(default_factory=list)
    root_cause: NonEmptyStr


class DiagnosticResult(SchemaModel):
    goal: GoalAnalysis
    user: UserAssessment
    gaps: KnowledgeGaps
    prerequisites: Prerequisites
    diagnosis: Diagnosis


# ---------------------------------------------------------------------------
# Pipeline phase 2: strategy
# ---------------------------------------------------------------------------


class Transformation(SchemaModel):
    vision: NonEmptyStr
    before_state: str = ""
    after_state: str = ""
    narrative: NonEmptyStr
    identity: str = ""


class SuccessDefinition(SchemaModel):
    looks_like: NonEmptyStr
    metrics: List[NonEmptyStr] = Field(..., min_length=1)
    abilities: List[str] = Field(default_factory=list)
    out_of_scope: List[str] = Field(default_factory=list)


class Milestone(SchemaModel):
    order: int = Field(..., ge=1)
    title: NonEmptyStr
    description: str = ""
    marker: NonEmptyStr
    unlocks: str = ""


class CriticalRisk(SchemaModel):
    warning: NonEmptyStr
    consequence: NonEmptyStr
    prevention: str = ""
    severity: Literal["CRITICAL"] = "CRITICAL"


class CommonRisk(SchemaModel):
    mistake: NonEmptyStr
    consequence: NonEmptyStr
    prevention: str = ""


class RiskAssessment(SchemaModel):
    critical: CriticalRisk
    common: List[CommonRisk] = Field(..., min_length=1)
    recovery_path: str = ""


class LearningStrategy(SchemaModel):
    approach: NonEmptyStr
    daily_commitment: NonEmptyStr
    estimated_days: int = Field(..., ge=1, le=365)
    pacing: Pacing
    focus_areas: List[str] = Field(default_factory=list)


class StrategyResult(SchemaModel):
    transformation: Transformation
    success: SuccessDefinition
    milestones: List[Milestone] = Field(..., min_length=1)
    risks: RiskAssessment
    strategy: LearningStrategy


# ---------------------------------------------------------------------------
# Pipeline phase 3: execution
# ---------------------------------------------------------------------------


class TimeBreakdown(SchemaModel):
    daily: NonEmptyStr
    total: NonEmptyStr
    flexible: str = ""


class StepRisk(SchemaModel):
    warning: NonEmptyStr
    consequence: NonEmptyStr
    severity: str = "RISK"


class SelfTest(SchemaModel):
    challenge: NonEmptyStr
    pass_criteria: NonEmptyStr
    fail_criteria: Optional[str] = None


class StepResource(SchemaModel):
    type: NonEmptyStr
    title: NonEmptyStr
    description: Optional[str] = None
    search_query: str = ""
    priority: int = 1


class MicroTask(SchemaModel):
    order: int = Field(..., ge=1)
    title: NonEmptyStr
    description: NonEmptyStr
    task_type: MicroTaskType = "ACTION"
    duration: int = Field(..., ge=1, le=240)
    verification_method: Optional[str] = None
    proof_required: bool = False


class CurrentStepDetail(SchemaModel):
    order: int = Field(default=1, ge=1)
    phase: Literal["NOW"] = "NOW"
    title: NonEmptyStr
    description: NonEmptyStr
    why_first: NonEmptyStr
    method: NonEmptyStr
    time_breakdown: TimeBreakdown
    risk: Optional[StepRisk] = None
    common_mistakes: List[NonEmptyStr] = Field(..., min_length=1)
    done_when: NonEmptyStr
    self_test: SelfTest
    abilities: List[NonEmptyStr] = Field(..., min_length=1)
    milestone: Optional[str] = None
    duration: int = Field(..., ge=1)
    timeframe: NonEmptyStr
    resources: List[StepResource] = Field(default_factory=list)
    micro_tasks: List[MicroTask] = Field(..., min_length=1)


class LockedStepPreview(SchemaModel):
    order: int = Field(..., ge=2)
    phase: Literal["NEXT", "LATER"]
    title: NonEmptyStr
    why_after_previous: str = ""
    preview_abilities: List[str] = Field(default_factory=list)
    milestone: Optional[str] = None
    estimated_duration: Optional[int] = Field(default=None, ge=1)
    resources: List[StepResource] = Field(default_factory=list)


class CriticalWarning(SchemaModel):
    warning: NonEmptyStr
    consequence: NonEmptyStr
    prevention: Optional[str] = None
    severity: Literal["CRITICAL"] = "CRITICAL"


class ExecutionResult(SchemaModel):
    title: NonEmptyStr
    total_steps: int = Field(..., ge=2, le=20)
    estimated_days: int = Field(..., ge=1, le=365)
    daily_commitment: NonEmptyStr
    total_minutes: int = Field(..., ge=0)
    current_step: CurrentStepDetail
    locked_steps: List[LockedStepPreview] = Field(..., min_length=1)
    critical_warning: Optional[CriticalWarning] = None


# ---------------------------------------------------------------------------
# Outbound plan contract
# ---------------------------------------------------------------------------


class PlatformRecommendation(SchemaModel):
    id: str
    name: str
    description: str = ""
    url: str
    search_url: Optional[str] = None
    resource_types: List[str] = Field(default_factory=list)
    search_url_template: Optional[str] = Field(default=None, exclude=True)

    def link_for(self, query: str) -> str:
        """Return a direct search link on this platform, or its home page."""
        if self.search_url_template and query:
            return self.search_url_template.replace("{query}", quote(query))
        return self.url


class ResourceLink(SchemaModel):
    type: str
    title: str
    description: Optional[str] = None
    search_query: str = ""
    platform_id: Optional[str] = None
    platform_name: Optional[str] = None
    direct_url: Optional[str] = None
    priority: int = 1


class CurrentStepOutput(CurrentStepDetail):
    id: str
    resources: List[ResourceLink] = Field(default_factory=list)  # type: ignore[assignment]
    is_locked: Literal[False] = False


class LockedStepOutput(LockedStepPreview):
    id: str
    resources: List[ResourceLink] = Field(default_factory=list)  # type: ignore[assignment]
    is_locked: Literal[True] = True


class PhaseTimings(SchemaModel):
    diagnostic: int = 0
    strategy: int = 0
    execution: int = 0
    total: int = 0


class PipelineDebug(SchemaModel):
    diagnostic: Dict[str, Any]
    strategy: Dict[str, Any]
    execution: Dict[str, Any]
    sources: Dict[str, Literal["generated", "fallback"]]
    timings: PhaseTimings
    quality: Dict[str, Any] = Field(default_factory=dict)


class PlanOutput(SchemaModel):
    title: NonEmptyStr
    overview: str
    vision: str
    target_user: str
    total_steps: int = Field(..., ge=2)
    estimated_days: int = Field(..., ge=1)
    daily_commitment: str
    total_minutes: int = Field(..., ge=0)
    success_looks_like: str
    success_metrics: List[str]
    out_of_scope: List[str]
    current_step: CurrentStepOutput
    locked_steps: List[LockedStepOutput]
    critical_warning: CriticalWarning
    pitfalls: List[str]
    milestones: List[Milestone]
    recommended_platforms: List[PlatformRecommendation]
    debug: Optional[PipelineDebug] = None
