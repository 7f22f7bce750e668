"""Three-phase roadmap pipeline: diagnose, strategize, execute, then assemble.

Each phase makes one gateway call and falls back to a deterministic result on any
generation failure, so ``run_pipeline`` always returns a complete ``PlanOutput``.
Only caller-driven cancellation escapes as an exception.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Generic, List, Literal, Optional, TypeVar
from uuid import uuid4

from roadmap_engine.core.config import settings
from roadmap_engine.core.context import pipeline_run_scope
from roadmap_engine.observability.metrics import log_metric
from roadmap_engine.observability.tracing import annotate, trace
from roadmap_engine.services import generation_gateway
from roadmap_engine.services.cancellation import CancelScope, PipelineCancelled
from roadmap_engine.services.collaborators import (
    GoalNormalizer,
    InputAnalyzer,
    InputContext,
    PlatformLookup,
    normalize_goal_text,
)
from roadmap_engine.services.diagnostic_phase import (
    PLACEHOLDER_GOAL,
    build_diagnostic_context,
    fallback_diagnostic,
    reconcile_diagnostic,
)
from roadmap_engine.services.doctrine import (
    DEFAULT_DOCTRINE,
    Doctrine,
    QualityVerdict,
    regeneration_feedback,
    verdict_for,
)
from roadmap_engine.services.execution_phase import (
    build_execution_context,
    calculate_step_count,
    fallback_execution,
    reconcile_execution,
    score_execution,
)
from roadmap_engine.services.output_schemas import (
    CriticalWarning,
    CurrentStepOutput,
    DiagnosticResult,
    ExecutionResult,
    LockedStepOutput,
    PhaseTimings,
    PipelineDebug,
    PlanOutput,
    PlatformRecommendation,
    ResourceLink,
    SchemaModel,
    StepResource,
    StrategyResult,
)
from roadmap_engine.services.plan_model import (
    CompletionCriteria,
    Plan,
    Step,
    StepStatus,
    categorize_goal,
    completion_threshold,
    get_ai_role,
    step_window,
    template_for_position,
)
from roadmap_engine.services.platform_catalog import detect_category, lookup_platforms
from roadmap_engine.services.quality_enforcement import enforce_actionability
from roadmap_engine.services.strategy_phase import build_strategy_context, fallback_strategy, reconcile_strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")
PhaseSource = Literal["generated", "fallback"]


class PipelineInput(SchemaModel):
    goal: str
    subject: Optional[str] = None
    user_context: Optional[str] = None
    memory_context: Optional[str] = None
    source_input: Optional[str] = None


@dataclass
class PhaseOutcome(Generic[T]):
    name: str
    data: T
    source: PhaseSource
    elapsed_ms: int
    attempts: int = 0
    error: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == "fallback"


@dataclass
class _RunDeps:
    client: Any
    scope: CancelScope
    doctrine: Doctrine


def run_pipeline(
    request: PipelineInput,
    *,
    client: Any = None,
    cancel: Optional[CancelScope] = None,
    normalize_goal: Optional[GoalNormalizer] = None,
    analyze_input: Optional[InputAnalyzer] = None,
    platform_lookup: Optional[PlatformLookup] = None,
    doctrine: Doctrine = DEFAULT_DOCTRINE,
) -> PlanOutput:
    """Generate a roadmap for ``request``.

    Raises ``PipelineCancelled`` if ``cancel`` fires; every other failure degrades to
    the deterministic fallback for the affected phase.
    """
    deps = _RunDeps(
        client=client if client is not None else generation_gateway.get_generation_client(),
        scope=cancel or CancelScope(),
        doctrine=doctrine,
    )
    lookup = platform_lookup or lookup_platforms
    started = perf_counter()

    with pipeline_run_scope() as run_id, trace("pipeline.run", metadata={"subject": request.subject}) as span:
        goal = _prepare_goal(request.goal, normalize_goal or normalize_goal_text)
        input_context = _analyze_source(request.source_input, analyze_input)
        logger.info("Pipeline run %s started for goal %r", run_id, goal)
        try:
            diagnostic = _run_diagnostic(request, goal, input_context, deps)
            strategy = _run_strategy(diagnostic.data, deps)
            execution = _run_execution(diagnostic.data, strategy.data, goal, deps)
            timings = _timings(started, diagnostic, strategy, execution)
            output = assemble_output(request, goal, diagnostic, strategy, execution, timings, lookup)
        except PipelineCancelled:
            logger.warning("Pipeline run %s cancelled", run_id)
            log_metric("pipeline.cancelled", 1)
            raise
        except Exception:
            logger.exception("Pipeline run %s failed during assembly; returning the full fallback plan", run_id)
            log_metric("pipeline.fallback.full", 1)
            output = fallback_output(request, goal, started=started, platform_lookup=lookup)

        sources = output.debug.sources if output.debug else {}
        annotate(span, {"sources": sources, "total_steps": output.total_steps})
        log_metric("pipeline.latency_ms", int((perf_counter() - started) * 1000), {"sources": sources})
        logger.info("Pipeline run %s finished (%s)", run_id, sources)
    return output


def _prepare_goal(raw_goal: str, normalize: GoalNormalizer) -> str:
    try:
        goal = normalize(raw_goal or "")
    except Exception:
        logger.warning("Goal normalizer failed; using the raw goal", exc_info=True)
        goal = raw_goal or ""
    return goal.strip()


def _analyze_source(source_input: Optional[str], analyze: Optional[InputAnalyzer]) -> Optional[InputContext]:
    if not source_input or analyze is None:
        return None
    try:
        return analyze(source_input)
    except Exception:
        logger.warning("Input analyzer failed; continuing without material context", exc_info=True)
        return None


def _phase_fallback(name: str, reason: Optional[str]) -> None:
    logger.warning("Phase %s fell back to the deterministic result: %s", name, reason)
    log_metric("pipeline.fallback.used", 1, {"phase": name, "reason": reason})


def _run_diagnostic(
    request: PipelineInput,
    goal: str,
    input_context: Optional[InputContext],
    deps: _RunDeps,
) -> PhaseOutcome[DiagnosticResult]:
    deps.scope.raise_if_cancelled("diagnostic")
    started = perf_counter()
    if not goal:
        _phase_fallback("diagnostic", "empty goal")
        return PhaseOutcome("diagnostic", fallback_diagnostic(goal, input_context), "fallback", _ms(started), error="empty goal")

    role = get_ai_role("diagnose")
    context = build_diagnostic_context(
        goal,
        subject=request.subject,
        user_context=request.user_context,
        memory_context=request.memory_context,
        input_context=input_context,
        max_chars=settings.context_block_max_chars,
    )
    with trace("pipeline.phase", metadata={"phase": "diagnostic"}):
        result = generation_gateway.execute(
            role,
            context,
            client=deps.client,
            timeout=deps.scope.call_timeout(settings.generation_timeout_s),
        )
    if result.success and isinstance(result.model, DiagnosticResult):
        return PhaseOutcome("diagnostic", reconcile_diagnostic(result.model, goal), "generated", _ms(started), result.attempts)

    reason = result.error.value if result.error else "unknown"
    _phase_fallback("diagnostic", reason)
    return PhaseOutcome("diagnostic", fallback_diagnostic(goal, input_context), "fallback", _ms(started), result.attempts, reason)


def _run_strategy(diagnostic: DiagnosticResult, deps: _RunDeps) -> PhaseOutcome[StrategyResult]:
    deps.scope.raise_if_cancelled("strategy")
    started = perf_counter()
    role = get_ai_role("strategize")
    context = build_strategy_context(diagnostic, settings.context_block_max_chars)
    with trace("pipeline.phase", metadata={"phase": "strategy"}):
        result = generation_gateway.execute(
            role,
            context,
            client=deps.client,
            timeout=deps.scope.call_timeout(settings.generation_timeout_s),
        )
    if result.success and isinstance(result.model, StrategyResult):
        return PhaseOutcome("strategy", reconcile_strategy(result.model, diagnostic), "generated", _ms(started), result.attempts)

    reason = result.error.value if result.error else "unknown"
    _phase_fallback("strategy", reason)
    return PhaseOutcome("strategy", fallback_strategy(diagnostic), "fallback", _ms(started), result.attempts, reason)


def _run_execution(
    diagnostic: DiagnosticResult,
    strategy: StrategyResult,
    goal: str,
    deps: _RunDeps,
) -> PhaseOutcome[ExecutionResult]:
    """Generate the execution plan, regenerating with feedback while the quality score is borderline."""
    started = perf_counter()
    step_count = calculate_step_count(diagnostic)
    role = get_ai_role("execute")
    base_context = build_execution_context(diagnostic, strategy, step_count, settings.context_block_max_chars)
    context = base_context
    best: Optional[ExecutionResult] = None
    best_score = -1
    attempts = 0
    reason: Optional[str] = None

    for attempt in range(1 + max(0, settings.quality_max_regenerations)):
        deps.scope.raise_if_cancelled("execution")
        with trace("pipeline.phase", metadata={"phase": "execution", "attempt": attempt + 1}):
            result = generation_gateway.execute(
                role,
                context,
                client=deps.client,
                timeout=deps.scope.call_timeout(settings.generation_timeout_s),
            )
        attempts += max(1, result.attempts)
        if not result.success or not isinstance(result.model, ExecutionResult):
            reason = result.error.value if result.error else "unknown"
            break

        candidate = reconcile_execution(result.model, diagnostic, strategy, step_count)
        score, violations = score_execution(candidate, deps.doctrine)
        verdict = verdict_for(score, deps.doctrine)
        log_metric("pipeline.execution.quality_score", score, {"attempt": attempt + 1, "verdict": verdict.value})
        if verdict is QualityVerdict.FALLBACK:
            reason = f"quality score {score} below {deps.doctrine.regenerate_threshold}"
            break
        if score > best_score:
            best, best_score = candidate, score
        if verdict is QualityVerdict.PASS:
            reason = None
            break
        logger.info("Execution scored %s on attempt %s; regenerating with feedback", score, attempt + 1)
        context = (
            f"{base_context}\n\n"
            "### REVIEWER FEEDBACK (previous plan rejected)\n"
            f"{regeneration_feedback(score, violations, deps.doctrine)}\n"
            "Write a new plan that fixes every issue above."
        )

    if best is None:
        _phase_fallback("execution", reason)
        return PhaseOutcome("execution", fallback_execution(diagnostic, strategy), "fallback", _ms(started), attempts, reason)

    enforced, rewrites = enforce_actionability(best, goal or diagnostic.goal.clarified)
    if rewrites:
        log_metric("pipeline.enforcement.rewrites", rewrites)
    return PhaseOutcome("execution", enforced, "generated", _ms(started), attempts, reason)


def _ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


def _timings(started: float, *outcomes: PhaseOutcome) -> PhaseTimings:
    by_name = {outcome.name: outcome.elapsed_ms for outcome in outcomes}
    return PhaseTimings(
        diagnostic=by_name.get("diagnostic", 0),
        strategy=by_name.get("strategy", 0),
        execution=by_name.get("execution", 0),
        total=_ms(started),
    )


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

_RESOURCE_PLATFORM_TYPES = {"video": "video", "exercise": "exercise", "article": "article"}


def _safe_lookup(lookup: PlatformLookup, subject: str, query: str) -> List[PlatformRecommendation]:
    try:
        return list(lookup(subject, query))
    except Exception:
        logger.warning("Platform lookup failed for subject %r", subject, exc_info=True)
        return []


def _link_resources(resources: List[StepResource], platforms: List[PlatformRecommendation]) -> List[ResourceLink]:
    links: List[ResourceLink] = []
    for resource in resources:
        wanted = _RESOURCE_PLATFORM_TYPES.get(resource.type.lower())
        platform = next((item for item in platforms if wanted and wanted in item.resource_types), None)
        if platform is None and platforms:
            platform = platforms[0]
        links.append(
            ResourceLink(
                type=resource.type,
                title=resource.title,
                description=resource.description,
                search_query=resource.search_query,
                platform_id=platform.id if platform else None,
                platform_name=platform.name if platform else None,
                direct_url=platform.link_for(resource.search_query or resource.title) if platform else None,
                priority=resource.priority,
            )
        )
    return links


def assemble_output(
    request: PipelineInput,
    goal: str,
    diagnostic: PhaseOutcome[DiagnosticResult],
    strategy: PhaseOutcome[StrategyResult],
    execution: PhaseOutcome[ExecutionResult],
    timings: PhaseTimings,
    platform_lookup: PlatformLookup = lookup_platforms,
) -> PlanOutput:
    """Combine the three phase results into the outbound plan."""
    plan = execution.data
    strategy_result = strategy.data
    risks = strategy_result.risks
    topic = goal or PLACEHOLDER_GOAL
    subject = request.subject or detect_category(topic) or topic
    platforms = _safe_lookup(platform_lookup, subject, topic[:50])

    current = plan.current_step
    current_output = CurrentStepOutput(
        **current.model_dump(exclude={"resources"}),
        id=uuid4().hex,
        resources=_link_resources(current.resources, platforms),
    )
    locked_outputs = [
        LockedStepOutput(
            **preview.model_dump(exclude={"resources"}),
            id=uuid4().hex,
            resources=_link_resources(preview.resources, platforms),
        )
        for preview in plan.locked_steps
    ]
    critical = plan.critical_warning or CriticalWarning(
        warning=risks.critical.warning,
        consequence=risks.critical.consequence,
        prevention=risks.critical.prevention or None,
    )
    pitfalls = [f"CRITICAL: {risks.critical.warning} -> {risks.critical.consequence}"]
    pitfalls.extend(f"{risk.mistake} -> {risk.consequence}" for risk in risks.common)

    debug = PipelineDebug(
        diagnostic=diagnostic.data.model_dump(by_alias=True),
        strategy=strategy_result.model_dump(by_alias=True),
        execution=plan.model_dump(by_alias=True),
        sources={outcome.name: outcome.source for outcome in (diagnostic, strategy, execution)},
        timings=timings,
        quality={
            "executionAttempts": execution.attempts,
            "errors": {outcome.name: outcome.error for outcome in (diagnostic, strategy, execution) if outcome.error},
        },
    )

    return PlanOutput(
        title=plan.title,
        overview=strategy_result.transformation.narrative,
        vision=strategy_result.transformation.vision,
        target_user=strategy_result.transformation.identity,
        total_steps=plan.total_steps,
        estimated_days=plan.estimated_days,
        daily_commitment=plan.daily_commitment,
        total_minutes=plan.total_minutes,
        success_looks_like=strategy_result.success.looks_like,
        success_metrics=list(strategy_result.success.metrics),
        out_of_scope=list(strategy_result.success.out_of_scope),
        current_step=current_output,
        locked_steps=locked_outputs,
        critical_warning=critical,
        pitfalls=pitfalls,
        milestones=list(strategy_result.milestones),
        recommended_platforms=platforms,
        debug=debug,
    )


def fallback_output(
    request: PipelineInput,
    goal: str,
    *,
    started: Optional[float] = None,
    platform_lookup: PlatformLookup = lookup_platforms,
) -> PlanOutput:
    """All-fallback plan used when a run cannot be assembled from its phases."""
    begin = started if started is not None else perf_counter()
    diagnostic = fallback_diagnostic(goal)
    strategy = fallback_strategy(diagnostic)
    execution = fallback_execution(diagnostic, strategy)
    outcomes = (
        PhaseOutcome("diagnostic", diagnostic, "fallback", 0, error="assembly failed"),
        PhaseOutcome("strategy", strategy, "fallback", 0, error="assembly failed"),
        PhaseOutcome("execution", execution, "fallback", 0, error="assembly failed"),
    )
    timings = _timings(begin, *outcomes)
    return assemble_output(request, goal, *outcomes, timings=timings, platform_lookup=platform_lookup)


# ---------------------------------------------------------------------------
# Plan construction
# ---------------------------------------------------------------------------


def build_plan(output: PlanOutput, *, goal: Optional[str] = None, user_id: Optional[str] = None) -> Plan:
    """Turn an outbound plan into the caller-owned ``Plan``: first step current, the rest locked."""
    plan_goal = goal or output.title
    category = categorize_goal(plan_goal)
    total = output.total_steps
    steps: List[Step] = []

    current = output.current_step
    first_template = template_for_position(category, 0, total)
    steps.append(
        Step(
            id=current.id,
            order=1,
            title=current.title,
            description=current.description,
            timeframe=current.timeframe,
            status=StepStatus.CURRENT,
            allowed_content=first_template.allowed_content.model_copy(),
            completion_criteria=CompletionCriteria(
                type=first_template.completion,
                threshold=completion_threshold(first_template, current.duration),
            ),
            pitfalls=list(current.common_mistakes),
            done_when=current.done_when,
            method=current.method,
            milestone=current.milestone,
        )
    )

    for index, preview in enumerate(output.locked_steps, start=1):
        template = template_for_position(category, index, total)
        steps.append(
            Step(
                id=preview.id,
                order=preview.order,
                title=preview.title,
                description=preview.why_after_previous,
                timeframe=step_window(index, total, output.estimated_days),
                status=StepStatus.LOCKED,
                allowed_content=template.allowed_content.model_copy(),
                completion_criteria=CompletionCriteria(
                    type=template.completion,
                    threshold=completion_threshold(template, preview.estimated_duration),
                ),
                done_when=f'You pass the self-test for "{preview.title}".',
                milestone=preview.milestone,
            )
        )

    return Plan(user_id=user_id, goal=plan_goal, category=category.type, steps=steps)

