"""Roadmap generation endpoints."""
from __future__ import annotations

import logging
from time import perf_counter

from fastapi import APIRouter, Request

from roadmap_engine.api.schemas.roadmap import GenerateRoadmapRequest, RoleRequest, RoleResponse
from roadmap_engine.observability.metrics import log_metric
from roadmap_engine.observability.tracing import trace
from roadmap_engine.services.output_schemas import PlanOutput
from roadmap_engine.services.plan_model import get_ai_role
from roadmap_engine.services.roadmap_pipeline import run_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/roadmaps/generate", response_model=PlanOutput, tags=["roadmaps"])
def generate_roadmap(payload: GenerateRoadmapRequest, http_request: Request) -> PlanOutput:
    """Run the three-phase pipeline for a goal and return the assembled plan."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {"route": "/roadmaps/generate", "include_debug": payload.include_debug}
    started = perf_counter()

    with trace("http.roadmaps.generate", metadata=metadata, request_id=request_id):
        output = run_pipeline(payload.to_pipeline_input())

    log_metric("http.roadmaps.generate.latency_ms", int((perf_counter() - started) * 1000), metadata)
    if not payload.include_debug:
        output = output.model_copy(update={"debug": None})
    return output


@router.post("/roadmaps/roles", response_model=RoleResponse, tags=["roadmaps"])
def describe_role(payload: RoleRequest) -> RoleResponse:
    """Show the constraints, rules, token ceiling and schema a generation call would get."""
    role = get_ai_role(payload.action, payload.current_step)
    logger.debug("Described role %s for action %s", role.role, role.action)
    return RoleResponse.model_validate(role.describe())
