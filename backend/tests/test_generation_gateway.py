from __future__ import annotations

import dataclasses
import json

import openai
import pytest

from roadmap_engine.services import generation_gateway
from roadmap_engine.services.generation_gateway import (
    GatewayError,
    execute,
    get_generation_client,
    parse_generation_json,
    token_budget,
)
from roadmap_engine.services.output_schemas import DiagnosticResult
from roadmap_engine.services.plan_model import get_ai_role


def test_success_returns_validated_model(scripted_client, diagnostic_payload) -> None:
    client = scripted_client({"diagnostic": diagnostic_payload})

    result = execute(get_ai_role("diagnose"), "GOAL: pass calculus", client=client)

    assert result.success
    assert result.error is None
    assert result.attempts == 1
    assert isinstance(result.model, DiagnosticResult)
    assert result.data["goal"]["timeframeDays"] == 14


def test_request_uses_json_mode_and_role_prompt(scripted_client, diagnostic_payload) -> None:
    client = scripted_client({"diagnostic": diagnostic_payload})

    execute(get_ai_role("diagnose"), "GOAL: pass calculus", client=client)

    call = client.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert call["max_tokens"] == 1000
    assert call["temperature"] == generation_gateway.settings.generation_temperature
    system, user = call["messages"]
    assert system["content"].startswith("### ROLE: diagnostic")
    assert "No complete solutions" in system["content"]
    assert user == {"role": "user", "content": "GOAL: pass calculus"}


def test_unknown_role_never_calls_the_service(scripted_client) -> None:
    client = scripted_client({})

    result = execute(get_ai_role("diagnose"), "ctx", client=client, prompts={})

    assert not result.success
    assert result.error is GatewayError.UNKNOWN_ROLE
    assert client.calls == []


def test_fenced_json_is_accepted(scripted_client, diagnostic_payload) -> None:
    client = scripted_client({"diagnostic": f"```json\n{json.dumps(diagnostic_payload)}\n```"})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert result.success


@pytest.mark.parametrize("raw", ["not json at all", "[1, 2, 3]", ""])
def test_unparsable_output_is_invalid_format(scripted_client, raw: str) -> None:
    client = scripted_client({"diagnostic": raw})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert not result.success
    assert result.error is GatewayError.INVALID_OUTPUT_FORMAT
    assert len(client.calls) == 1


def test_schema_mismatch_is_validation_failure(scripted_client, diagnostic_payload) -> None:
    diagnostic_payload["goal"]["type"] = "vibes"
    client = scripted_client({"diagnostic": diagnostic_payload})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert not result.success
    assert result.error is GatewayError.VALIDATION_FAILED
    assert result.data is None
    assert any(error.startswith("goal.type:") for error in result.validation_errors)


def test_transport_error_is_retried_once(scripted_client, diagnostic_payload) -> None:
    client = scripted_client({"diagnostic": [TimeoutError("slow"), diagnostic_payload]})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert result.success
    assert result.attempts == 2
    assert len(client.calls) == 2


def test_transport_error_after_retry_fails(scripted_client) -> None:
    client = scripted_client({"diagnostic": ConnectionError("refused")})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert not result.success
    assert result.error is GatewayError.TRANSPORT_ERROR
    assert result.attempts == 2
    assert len(client.calls) == 2


def test_rejected_request_is_not_retried(scripted_client) -> None:
    client = scripted_client({"diagnostic": openai.OpenAIError("quota exceeded")})

    result = execute(get_ai_role("diagnose"), "ctx", client=client)

    assert result.error is GatewayError.TRANSPORT_ERROR
    assert "quota exceeded" in result.error_detail
    assert len(client.calls) == 1


def test_missing_client_is_a_transport_error() -> None:
    result = execute(get_ai_role("diagnose"), "ctx")

    assert not result.success
    assert result.error is GatewayError.TRANSPORT_ERROR
    assert result.attempts == 0


def test_no_api_key_means_no_client(monkeypatch) -> None:
    monkeypatch.setattr(generation_gateway.settings, "openai_api_key", None)

    assert get_generation_client() is None


def test_token_budget_never_exceeds_ceiling() -> None:
    role = dataclasses.replace(get_ai_role("get_mission"), max_tokens=5000)

    assert token_budget(role) == 400
    assert token_budget(get_ai_role("check_progress")) == 200


def test_parse_rejects_non_objects() -> None:
    assert parse_generation_json('  {"a": 1}  ') == {"a": 1}
    with pytest.raises(ValueError):
        parse_generation_json('"just a string"')
