from __future__ import annotations

from fastapi.testclient import TestClient

from roadmap_engine.services import generation_gateway
from roadmap_engine.services.plan_model import NO_FULL_SOLUTIONS_CONSTRAINT


def _get_client() -> TestClient:
    from roadmap_engine.main import app

    return TestClient(app)


def test_generate_roadmap_returns_camel_case_plan() -> None:
    client = _get_client()

    response = client.post("/roadmaps/generate", json={"goal": "pass my calculus exam in 2 weeks"})

    assert response.status_code == 200
    body = response.json()
    assert body["totalSteps"] == 6
    assert body["currentStep"]["timeframe"] == "Days 1-3"
    assert body["currentStep"]["isLocked"] is False
    assert [step["order"] for step in body["lockedSteps"]] == [2, 3, 4, 5, 6]
    assert body["criticalWarning"]["severity"] == "CRITICAL"
    assert body["debug"] is None
    assert all("searchUrlTemplate" not in platform for platform in body["recommendedPlatforms"])


def test_generate_roadmap_with_debug_block(monkeypatch, scripted_client, diagnostic_payload) -> None:
    scripted = scripted_client({"diagnostic": diagnostic_payload, "strategy": {}, "execution": {}})
    monkeypatch.setattr(generation_gateway, "get_generation_client", lambda: scripted)
    client = _get_client()

    response = client.post(
        "/roadmaps/generate",
        json={"goal": "pass my calculus exam in 2 weeks", "subject": "math", "includeDebug": True},
    )

    assert response.status_code == 200
    debug = response.json()["debug"]
    assert debug["sources"] == {"diagnostic": "generated", "strategy": "fallback", "execution": "fallback"}
    assert set(debug["timings"]) == {"diagnostic", "strategy", "execution", "total"}
    assert debug["quality"]["errors"]["strategy"] == "ValidationFailed"


def test_generate_roadmap_rejects_blank_goal() -> None:
    client = _get_client()

    response = client.post("/roadmaps/generate", json={"goal": "   "})

    assert response.status_code == 422


def test_generate_roadmap_echoes_request_id() -> None:
    client = _get_client()

    response = client.post(
        "/roadmaps/generate",
        json={"goal": "learn chess"},
        headers={"X-Request-Id": "roadmap-req-1"},
    )

    assert response.status_code == 200
    assert response.headers.get("X-Request-Id") == "roadmap-req-1"


def test_describe_role_for_practice() -> None:
    client = _get_client()

    response = client.post("/roadmaps/roles", json={"action": "practice"})

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "practice_generator"
    assert body["maxTokens"] == 400
    assert NO_FULL_SOLUTIONS_CONSTRAINT in body["constraints"]
    assert body["outputSchema"]["title"] == "PracticeOutput"


def test_describe_role_with_open_solutions_step() -> None:
    client = _get_client()

    response = client.post(
        "/roadmaps/roles",
        json={
            "action": "practice",
            "currentStep": {"order": 4, "title": "Final review", "allowedContent": {"fullSolutions": True}},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert NO_FULL_SOLUTIONS_CONSTRAINT not in body["constraints"]
    assert body["outputSchema"]["title"] == "PracticeWithSolutionsOutput"
    assert any("Final review" in constraint for constraint in body["constraints"])


def test_describe_role_rejects_unknown_action() -> None:
    client = _get_client()

    response = client.post("/roadmaps/roles", json={"action": "teach_everything"})

    assert response.status_code == 422
