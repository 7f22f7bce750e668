from __future__ import annotations

import copy
import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from roadmap_engine.services import generation_gateway


class ScriptedClient:
    """Stand-in for ``openai.OpenAI`` that answers each role from a script.

    Each role maps to a list of responses consumed in order; the last one repeats.
    A response may be a dict (sent as JSON), a raw string, an exception to raise,
    or a callable receiving the call kwargs and returning one of those.
    """

    def __init__(self, script: Dict[str, Any]):
        self.script = {role: list(items) if isinstance(items, list) else [items] for role, items in script.items()}
        self.calls: List[Dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        system_prompt = kwargs["messages"][0]["content"]
        role = system_prompt.split("\n", 1)[0].replace("### ROLE:", "").strip()
        self.calls.append({"role": role, **kwargs})
        queue = self.script.get(role)
        if not queue:
            raise AssertionError(f"no scripted response for role {role}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item) and not isinstance(item, type):
            item = item(kwargs)
        if isinstance(item, BaseException):
            raise item
        content = item if isinstance(item, str) else json.dumps(item)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    def roles(self) -> List[str]:
        return [call["role"] for call in self.calls]


@pytest.fixture(autouse=True)
def no_live_generation(monkeypatch):
    """Tests never reach the real generation service."""
    monkeypatch.setattr(generation_gateway, "get_generation_client", lambda: None)


@pytest.fixture()
def scripted_client():
    return ScriptedClient


_DIAGNOSTIC = {
    "goal": {
        "original": "ignored",
        "clarified": "Pass the calculus exam",
        "type": "learn_subject",
        "urgency": "short_term",
        "scope": "narrow",
        "timeframeDays": 14,
    },
    "user": {
        "inferredLevel": "beginner",
        "priorKnowledge": ["algebra"],
        "context": "First-year student",
        "constraints": ["evenings only"],
    },
    "gaps": {
        "critical": ["limits", "derivatives"],
        "important": ["integrals"],
        "optional": [],
        "priorityOrder": ["limits", "derivatives", "integrals"],
    },
    "prerequisites": {"required": ["algebra"], "recommended": [], "missing": []},
    "diagnosis": {
        "whyStuck": "Notes are re-read but problems are never solved against the clock.",
        "falseBeliefs": ["Reading solutions is the same as solving"],
        "overFocusing": ["Highlighting"],
        "neglecting": ["Timed practice"],
        "rootCause": "Recognition is mistaken for recall.",
    },
}

_STRATEGY = {
    "transformation": {
        "vision": "Walk into the exam able to solve every standard question type.",
        "beforeState": "Familiar with the notes",
        "afterState": "Fast and accurate under time pressure",
        "narrative": "From recognizing methods to producing them on demand.",
        "identity": "A student who practices under exam conditions",
    },
    "success": {
        "looksLike": "A full past paper finished in time with 80% correct.",
        "metrics": ["80% on a timed past paper"],
        "abilities": ["Evaluate limits", "Differentiate with the chain rule"],
        "outOfScope": ["Multivariable calculus"],
    },
    "milestones": [
        {"order": 1, "title": "Limits solid", "marker": "8 of 10 limit problems correct"},
        {"order": 2, "title": "Derivatives solid", "marker": "8 of 10 derivative problems correct"},
    ],
    "risks": {
        "critical": {
            "warning": "Re-reading notes instead of solving problems",
            "consequence": "Freezing on unseen questions",
            "prevention": "Solve before you read",
            "severity": "CRITICAL",
        },
        "common": [{"mistake": "Skipping the timer", "consequence": "Running out of time in the exam"}],
        "recoveryPath": "Redo the last timed set.",
    },
    "strategy": {
        "approach": "Timed problem sets with error review",
        "dailyCommitment": "40 min/day",
        "estimatedDays": 21,
        "pacing": "intensive",
        "focusAreas": ["limits", "derivatives"],
    },
}

_EXECUTION = {
    "title": "Calculus exam in two weeks",
    "totalSteps": 4,
    "estimatedDays": 20,
    "dailyCommitment": "40 min/day",
    "totalMinutes": 560,
    "currentStep": {
        "order": 1,
        "phase": "NOW",
        "title": "Limits and continuity",
        "description": "Get limits right before touching derivatives.",
        "whyFirst": "Derivatives are defined as limits, so every later topic depends on this one.",
        "method": (
            "Day 1: Open the limits chapter of Paul's notes and solve problems 1-5.\n"
            "Day 2: Solve 10 limit problems from a past paper with a 20-minute timer.\n"
            "Day 3: Close all notes and redo the 3 problems you missed."
        ),
        "timeBreakdown": {"daily": "40 min", "total": "120 min"},
        "commonMistakes": ["Plugging in values without checking for 0/0", "Ignoring one-sided limits"],
        "doneWhen": "You solve 8 of 10 fresh limit problems in 20 minutes.",
        "selfTest": {"challenge": "Solve 5 unseen limit problems without notes.", "passCriteria": "4 of 5 correct."},
        "abilities": ["Evaluate limits algebraically"],
        "duration": 120,
        "timeframe": "Days 1-3",
        "resources": [
            {"type": "video", "title": "Limits intro", "searchQuery": "calculus limits intro"},
            {"type": "exercise", "title": "Limit drills", "searchQuery": "limit practice problems"},
        ],
        "microTasks": [
            {
                "order": 1,
                "title": "Limit drill",
                "description": "Solve problems 1-5 from the limits section and mark them.",
                "taskType": "PRACTICE",
                "duration": 40,
            }
        ],
    },
    "lockedSteps": [
        {"order": 2, "phase": "NEXT", "title": "Derivative rules", "whyAfterPrevious": "Derivatives are limits."},
        {"order": 3, "phase": "LATER", "title": "Chain rule"},
        {"order": 4, "phase": "LATER", "title": "Timed mock exam"},
    ],
}

# Four major forbidden phrases: 100 - 40 = 60, which asks for a regeneration.
BORDERLINE_DESCRIPTION = (
    "Take your time and work at your own pace. Just practice more when you feel ready."
)
# Six major forbidden phrases: 100 - 60 = 40, which forces the fallback.
POOR_DESCRIPTION = BORDERLINE_DESCRIPTION + " Keep trying and do your best."


@pytest.fixture()
def diagnostic_payload() -> Dict[str, Any]:
    return copy.deepcopy(_DIAGNOSTIC)


@pytest.fixture()
def strategy_payload() -> Dict[str, Any]:
    return copy.deepcopy(_STRATEGY)


@pytest.fixture()
def execution_payload() -> Dict[str, Any]:
    return copy.deepcopy(_EXECUTION)


@pytest.fixture()
def borderline_execution_payload() -> Dict[str, Any]:
    payload = copy.deepcopy(_EXECUTION)
    payload["currentStep"]["description"] = BORDERLINE_DESCRIPTION
    return payload


@pytest.fixture()
def poor_execution_payload() -> Dict[str, Any]:
    payload = copy.deepcopy(_EXECUTION)
    payload["currentStep"]["description"] = POOR_DESCRIPTION
    return payload
