"""Interfaces for the services the pipeline consults but does not own."""
from __future__ import annotations

from typing import Callable, List, Literal

from pydantic import Field

from roadmap_engine.services.output_schemas import PlatformRecommendation, SchemaModel


class InputContext(SchemaModel):
    """What an input analyzer extracted from uploaded or pasted material."""

    topic: str = ""
    subtopics: List[str] = Field(default_factory=list)
    complexity: Literal["beginner", "intermediate", "advanced"] = "beginner"
    prerequisites: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


GoalNormalizer = Callable[[str], str]
InputAnalyzer = Callable[[str], InputContext]
PlatformLookup = Callable[[str, str], List[PlatformRecommendation]]


def normalize_goal_text(goal: str) -> str:
    """Default ``GoalNormalizer``: collapse whitespace and trailing punctuation."""
    return " ".join((goal or "").split()).rstrip(" .!")


def format_input_context(context: InputContext) -> str:
    lines: List[str] = []
    if context.topic:
        lines.append(f"Topic from the learner's material: {context.topic}")
    if context.subtopics:
        lines.append(f"Subtopics: {', '.join(context.subtopics)}")
    lines.append(f"Material complexity: {context.complexity}")
    if context.prerequisites:
        lines.append(f"Prerequisites it assumes: {', '.join(context.prerequisites)}")
    if context.focus_areas:
        lines.append(f"Focus areas: {', '.join(context.focus_areas)}")
    if context.warnings:
        lines.append(f"Warnings: {', '.join(context.warnings)}")
    return "\n".join(lines)
