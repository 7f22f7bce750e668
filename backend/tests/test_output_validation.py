from __future__ import annotations

from typing import Any, Iterator, List, Optional, Tuple, Type, get_args

import pytest
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from roadmap_engine.services.output_schemas import DiagnosticResult, ExecutionResult, StrategyResult
from roadmap_engine.services.plan_model import AllowedContent, Step, get_ai_role, validate_output


def test_valid_diagnostic_is_accepted(diagnostic_payload) -> None:
    result = validate_output(diagnostic_payload, get_ai_role("diagnose"))

    assert result.valid
    assert result.errors == []
    assert isinstance(result.model, DiagnosticResult)
    assert result.model.goal.timeframe_days == 14


@pytest.mark.parametrize("output", [None, "plain text", ["a", "list"], 42])
def test_non_object_output_is_rejected(output) -> None:
    result = validate_output(output, get_ai_role("diagnose"))

    assert not result.valid
    assert result.errors == ["Output is not a JSON object"]
    assert result.model is None


def test_nested_errors_carry_their_path(execution_payload) -> None:
    execution_payload["currentStep"]["commonMistakes"] = []
    execution_payload["currentStep"]["microTasks"][0]["taskType"] = "DAYDREAM"

    result = validate_output(execution_payload, get_ai_role("execute"))

    assert not result.valid
    assert any(error.startswith("currentStep.commonMistakes:") for error in result.errors)
    assert any(error.startswith("currentStep.microTasks.0.taskType:") for error in result.errors)


def test_execution_accepts_unknown_extra_fields(execution_payload) -> None:
    execution_payload["motivationalQuote"] = "You can do it"

    result = validate_output(execution_payload, get_ai_role("execute"))

    assert result.valid
    assert isinstance(result.model, ExecutionResult)


def test_strategy_requires_critical_severity(strategy_payload) -> None:
    strategy_payload["risks"]["critical"]["severity"] = "LOW"

    result = validate_output(strategy_payload, get_ai_role("strategize"))

    assert not result.valid
    assert any(error.startswith("risks.critical.severity:") for error in result.errors)


def test_practice_answers_rejected_when_solutions_are_locked() -> None:
    payload = {
        "focusArea": "chain rule",
        "problems": [{"id": "p1", "problem": "Differentiate sin(x^2)", "difficulty": "easy", "answer": "2x cos(x^2)"}],
    }
    locked = Step(order=1, title="Chain rule")
    unlocked = Step(order=1, title="Chain rule", allowed_content=AllowedContent(full_solutions=True))

    assert not validate_output(payload, get_ai_role("practice", locked)).valid
    assert validate_output(payload, get_ai_role("practice", unlocked)).valid


def test_mission_output_validation() -> None:
    role = get_ai_role("get_mission")
    mission = {
        "title": "Limits warm-up",
        "estimatedMinutes": 30,
        "actions": [{"order": 1, "instruction": "Solve problems 1-5", "type": "practice"}],
        "doneWhen": "All 5 answers are checked.",
    }

    assert validate_output(mission, role).valid
    mission["actions"][0]["type"] = "meditate"
    assert not validate_output(mission, role).valid


PHASES = [
    ("diagnose", DiagnosticResult, "diagnostic_payload"),
    ("strategize", StrategyResult, "strategy_payload"),
    ("execute", ExecutionResult, "execution_payload"),
]

Path = Tuple[Any, ...]


def _nested_model(annotation: Any) -> Optional[Type[BaseModel]]:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in get_args(annotation):
        model = _nested_model(arg)
        if model is not None:
            return model
    return None


def _is_list(annotation: Any) -> bool:
    return getattr(annotation, "__origin__", None) is list


def _walk(model: Type[BaseModel], prefix: Path = ()) -> Iterator[Tuple[Path, bool]]:
    """Yield (path, must be non-empty) for every required field, descending into required sub-documents."""
    for name, field in model.model_fields.items():
        if not field.is_required():
            continue
        path = prefix + (field.alias or to_camel(name),)
        non_empty = _is_list(field.annotation) and any(getattr(meta, "min_length", 0) for meta in field.metadata)
        yield path, non_empty
        nested = _nested_model(field.annotation)
        if nested is not None:
            yield from _walk(nested, path + (0,) if _is_list(field.annotation) else path)


def _cases(kind: str) -> List[Any]:
    cases = []
    for action, model, fixture in PHASES:
        for path, non_empty in _walk(model):
            if kind == "non_empty" and not non_empty:
                continue
            label = ".".join(str(part) for part in path)
            cases.append(pytest.param(action, fixture, path, id=f"{action}:{label}"))
    return cases


def _parent(payload: Any, path: Path) -> Any:
    for part in path[:-1]:
        payload = payload[part]
    return payload


def _assert_rejected_at(payload: dict, action: str, path: Path) -> None:
    result = validate_output(payload, get_ai_role(action))

    location = ".".join(str(part) for part in path)
    assert not result.valid
    assert any(error.startswith(f"{location}:") for error in result.errors), result.errors


def test_every_phase_schema_has_nested_required_fields() -> None:
    paths = {".".join(str(part) for part in path) for _, model, _ in PHASES for path, _ in _walk(model)}

    assert {"risks.critical.warning", "gaps.priorityOrder", "strategy.estimatedDays"} <= paths
    assert "currentStep.microTasks.0.duration" in paths


@pytest.mark.parametrize("action, fixture, path", _cases("required"))
def test_missing_required_field_is_rejected(request, action: str, fixture: str, path: Path) -> None:
    payload = request.getfixturevalue(fixture)
    del _parent(payload, path)[path[-1]]

    _assert_rejected_at(payload, action, path)


@pytest.mark.parametrize("action, fixture, path", _cases("required"))
def test_null_required_field_is_rejected(request, action: str, fixture: str, path: Path) -> None:
    payload = request.getfixturevalue(fixture)
    _parent(payload, path)[path[-1]] = None

    _assert_rejected_at(payload, action, path)


@pytest.mark.parametrize("action, fixture, path", _cases("non_empty"))
def test_empty_required_list_is_rejected(request, action: str, fixture: str, path: Path) -> None:
    payload = request.getfixturevalue(fixture)
    _parent(payload, path)[path[-1]] = []

    _assert_rejected_at(payload, action, path)
