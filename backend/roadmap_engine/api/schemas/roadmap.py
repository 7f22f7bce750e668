"""Schemas for the roadmap endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from roadmap_engine.services.output_schemas import NonEmptyStr, SchemaModel
from roadmap_engine.services.plan_model import Step
from roadmap_engine.services.roadmap_pipeline import PipelineInput

RoleAction = Literal[
    "create_roadmap",
    "get_mission",
    "explain",
    "practice",
    "check_progress",
    "diagnose",
    "strategize",
    "execute",
]


class GenerateRoadmapRequest(SchemaModel):
    goal: NonEmptyStr = Field(..., max_length=2000)
    subject: Optional[str] = None
    user_context: Optional[str] = None
    memory_context: Optional[str] = None
    source_input: Optional[str] = None
    include_debug: bool = False

    def to_pipeline_input(self) -> PipelineInput:
        return PipelineInput(
            goal=self.goal,
            subject=self.subject,
            user_context=self.user_context,
            memory_context=self.memory_context,
            source_input=self.source_input,
        )


class RoleRequest(SchemaModel):
    action: RoleAction
    current_step: Optional[Step] = None


class RoleResponse(SchemaModel):
    role: str
    action: str
    constraints: List[str]
    rules: List[str]
    max_tokens: int
    output_schema: Dict[str, Any]
