"""Single entry point for every call to the text-generation service.

Each call is scoped to one role: the role decides the system prompt, the token ceiling and
the schema the response must satisfy. Nothing the generator returns reaches a caller
without passing ``validate_output``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Tuple

import openai
from pydantic import BaseModel

from roadmap_engine.core.config import settings
from roadmap_engine.observability.metrics import log_metric
from roadmap_engine.observability.tracing import annotate, trace
from roadmap_engine.services.plan_model import RoleConfig, validate_output
from roadmap_engine.services.prompts import DEFAULT_PROMPTS

logger = logging.getLogger(__name__)


class GatewayError(str, Enum):
    UNKNOWN_ROLE = "UnknownRole"
    INVALID_OUTPUT_FORMAT = "InvalidOutputFormat"
    VALIDATION_FAILED = "ValidationFailed"
    TRANSPORT_ERROR = "TransportError"


TOKEN_CEILINGS: Mapping[str, int] = {
    "diagnostic": 1000,
    "strategy": 1200,
    "execution": 2500,
    "roadmap_builder": 800,
    "mission_generator": 400,
    "explainer": 500,
    "practice_generator": 400,
    "progress_checker": 200,
}
DEFAULT_TOKEN_CEILING = 400

# Only these are worth a second attempt; everything else fails fast.
RETRYABLE_ERRORS: Tuple[type, ...] = (openai.APITimeoutError, openai.APIConnectionError, TimeoutError, ConnectionError)


@dataclass
class GatewayResult:
    role: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    model: Optional[BaseModel] = None
    error: Optional[GatewayError] = None
    error_detail: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)
    elapsed_ms: int = 0
    attempts: int = 0


class TransportFailure(Exception):
    """The generation service could not be reached or rejected the request."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


def get_generation_client() -> Optional[openai.OpenAI]:
    """Return an OpenAI client built from settings, or ``None`` when no key is configured."""
    api_key = settings.openai_api_key
    if not api_key:
        return None
    # The gateway owns retries; the SDK must not add its own.
    return openai.OpenAI(api_key=api_key, max_retries=0, timeout=settings.generation_timeout_s)


def token_budget(role: RoleConfig) -> int:
    return min(role.max_tokens, TOKEN_CEILINGS.get(role.role, DEFAULT_TOKEN_CEILING))


def build_system_instruction(prompt: str, role: RoleConfig) -> str:
    schema = json.dumps(role.output_schema.model_json_schema(by_alias=True), indent=2)
    constraints = "\n".join(f"- {line}" for line in role.constraints)
    rules = "\n".join(f"- {line}" for line in role.rules)
    return (
        f"### ROLE: {role.role}\n"
        f"{prompt}\n\n"
        "### CONSTRAINTS (the system enforces these)\n"
        f"{constraints}\n\n"
        "### RULES\n"
        f"{rules}\n\n"
        "### OUTPUT\n"
        "Respond with exactly one JSON object matching this schema. No prose, no markdown.\n"
        f"{schema}"
    )


def parse_generation_json(raw: str) -> Dict[str, Any]:
    """Parse the generator's text as a single JSON object, tolerating markdown fences."""
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned[3:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
        cleaned = cleaned.strip()
    payload = json.loads(cleaned)
    if not isinstance(payload, dict):
        raise ValueError("generation output is not a JSON object")
    return payload


def execute(
    role: RoleConfig,
    context: str,
    *,
    client: Any = None,
    prompts: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> GatewayResult:
    """Run one role-scoped generation call and return a validated result envelope.

    The call never raises for generation problems: unknown roles, transport failures,
    unparsable text and schema mismatches all come back as ``success=False`` with an
    error kind from ``GatewayError``.
    """
    started = perf_counter()
    registry = DEFAULT_PROMPTS if prompts is None else prompts
    system_prompt = registry.get(role.role)
    if system_prompt is None:
        result = GatewayResult(
            role=role.role,
            success=False,
            error=GatewayError.UNKNOWN_ROLE,
            error_detail=f"no prompt registered for role {role.role!r}",
        )
        return _finish(result, started)

    generation_client = client if client is not None else get_generation_client()
    max_tokens = token_budget(role)
    messages = [
        {"role": "system", "content": build_system_instruction(system_prompt, role)},
        {"role": "user", "content": context},
    ]
    trace_metadata = {"role": role.role, "action": role.action, "max_tokens": max_tokens}

    with trace("generation.execute", metadata=trace_metadata) as span:
        result = _generate(role, generation_client, messages, max_tokens, timeout)
        annotate(
            span,
            {
                "success": result.success,
                "error": result.error.value if result.error else None,
                "attempts": result.attempts,
            },
        )
    return _finish(result, started)


def _generate(
    role: RoleConfig,
    client: Any,
    messages: List[Dict[str, str]],
    max_tokens: int,
    timeout: Optional[float],
) -> GatewayResult:
    try:
        raw, attempts = _complete_with_retry(client, messages, max_tokens, timeout)
    except TransportFailure as exc:
        return GatewayResult(
            role=role.role,
            success=False,
            error=GatewayError.TRANSPORT_ERROR,
            error_detail=str(exc),
            attempts=exc.attempts,
        )

    try:
        payload = parse_generation_json(raw)
    except ValueError as exc:
        return GatewayResult(
            role=role.role,
            success=False,
            error=GatewayError.INVALID_OUTPUT_FORMAT,
            error_detail=str(exc),
            attempts=attempts,
        )

    validation = validate_output(payload, role)
    if not validation.valid or validation.model is None:
        return GatewayResult(
            role=role.role,
            success=False,
            error=GatewayError.VALIDATION_FAILED,
            error_detail=f"{len(validation.errors)} schema error(s)",
            validation_errors=validation.errors,
            attempts=attempts,
        )

    return GatewayResult(
        role=role.role,
        success=True,
        data=validation.model.model_dump(by_alias=True),
        model=validation.model,
        attempts=attempts,
    )


def _complete_with_retry(
    client: Any,
    messages: List[Dict[str, str]],
    max_tokens: int,
    timeout: Optional[float],
) -> Tuple[str, int]:
    if client is None:
        raise TransportFailure("generation service unavailable: OPENAI_API_KEY is not configured")

    max_attempts = 1 + max(0, settings.transport_retries)
    call_timeout = timeout if timeout is not None else settings.generation_timeout_s
    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            completion = client.chat.completions.create(
                model=settings.generation_model,
                response_format={"type": "json_object"},
                temperature=settings.generation_temperature,
                max_tokens=max_tokens,
                timeout=call_timeout,
                messages=messages,
            )
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            logger.warning("Generation transport error (attempt %s/%s): %s", attempt, max_attempts, exc)
            continue
        except openai.OpenAIError as exc:
            raise TransportFailure(f"generation service rejected the request: {exc}", attempt) from exc
        return _completion_text(completion), attempt

    raise TransportFailure(
        f"generation service unreachable after {max_attempts} attempt(s): {last_error}", max_attempts
    ) from last_error


def _completion_text(completion: Any) -> str:
    try:
        return completion.choices[0].message.content or ""
    except (AttributeError, IndexError, TypeError):
        return ""


def _finish(result: GatewayResult, started: float) -> GatewayResult:
    result.elapsed_ms = int((perf_counter() - started) * 1000)
    outcome = "ok" if result.success else result.error.value if result.error else "error"
    logger.info(
        "generation role=%s outcome=%s attempts=%s elapsed_ms=%s",
        result.role,
        outcome,
        result.attempts,
        result.elapsed_ms,
    )
    if result.validation_errors:
        logger.debug("generation role=%s validation errors: %s", result.role, result.validation_errors)
    metadata = {"role": result.role, "outcome": outcome}
    log_metric("generation.latency_ms", result.elapsed_ms, metadata)
    log_metric("generation.success", 1 if result.success else 0, metadata)
    return result
