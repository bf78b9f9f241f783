"""
HTTP Surface Tests

The engine dependency is overridden with the in-memory engine from conftest,
except in the composition-root tests, which build the real singletons.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from hitl_orchestrator.app import dependencies
from hitl_orchestrator.app.dependencies import get_workflow_engine
from hitl_orchestrator.app.main import app
from hitl_orchestrator.config import settings
from tests.conftest import make_decision, make_plan, make_step, make_task

PROVIDERS = [
    dependencies.get_llm_provider,
    dependencies.get_state_machine,
    dependencies.get_task_repository,
    dependencies.get_plan_repository,
    dependencies.get_decision_repository,
    dependencies.get_result_repository,
    dependencies.get_pattern_repository,
    dependencies.get_planner,
    dependencies.get_executor,
    dependencies.get_workflow_engine,
]


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_workflow_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_and_propose(client):
    response = client.post("/tasks", json=make_task().model_dump(mode="json"))
    assert response.status_code == 201
    response = client.post("/tasks/task-001/proposals")
    assert response.status_code == 200
    return response.json()


class TestWorkflowEndpoints:
    def test_create_task(self, client):
        response = client.post("/tasks", json=make_task().model_dump(mode="json"))

        assert response.status_code == 201
        body = response.json()
        assert body["success"]
        assert body["completed_actions"] == ["CREATE", "START_PLANNING"]
        assert body["transition"]["new_state"] == "awaiting_proposals"

    def test_invalid_task_payload_is_422(self, client):
        payload = make_task().model_dump(mode="json")
        payload["description"] = "short"

        assert client.post("/tasks", json=payload).status_code == 422

    def test_duplicate_task_is_409(self, client):
        client.post("/tasks", json=make_task().model_dump(mode="json"))

        response = client.post("/tasks", json=make_task().model_dump(mode="json"))

        assert response.status_code == 409

    def test_full_flow(self, client):
        proposed = create_and_propose(client)
        assert proposed["plan_ids"] == ["plan-1-1", "plan-1-2"]

        decision = make_decision(plan_id="plan-1-1").model_dump(mode="json")
        response = client.post("/decisions", params={"decided_by": "alice"}, json=decision)
        assert response.status_code == 201
        assert response.json()["decision_id"] == "decision-001"

        response = client.post("/tasks/task-001/plans/plan-1-1/run")
        assert response.status_code == 200
        assert response.json()["result_id"].startswith("result-")

        response = client.post("/tasks/task-001/verify", json={"verified": True})
        assert response.status_code == 200

        workflow = client.get("/tasks/task-001/workflow").json()
        assert workflow["state"] == "completed"
        assert workflow["terminal"]
        assert not workflow["requires_human_input"]
        assert workflow["valid_actions"] == []
        assert len(workflow["history"]) == 7

    def test_refused_transition_is_409_with_guard_message(self, client):
        create_and_propose(client)

        response = client.post("/tasks/task-001/verify", json={"verified": True})

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error_kind"] == "InvalidTransition"
        assert not detail["partial"]

    def test_running_an_unapproved_plan_is_409(self, client):
        create_and_propose(client)
        decision = make_decision(plan_id="plan-1-1").model_dump(mode="json")
        client.post("/decisions", json=decision)

        response = client.post("/tasks/task-001/plans/plan-1-2/run")

        assert response.status_code == 409
        assert response.json()["detail"]["error_kind"] == "GuardFailed"
        assert client.get("/tasks/task-001/workflow").json()["state"] == "plan_approved"

    def test_workflow_read_for_pending_decision(self, client):
        create_and_propose(client)

        workflow = client.get("/tasks/task-001/workflow").json()

        assert workflow["state"] == "awaiting_human_decision"
        assert workflow["description"] == "Waiting for human approval"
        assert workflow["requires_human_input"]
        assert workflow["valid_actions"] == ["APPROVE", "REJECT", "FAIL", "REPLAN"]

    def test_unknown_task_is_404(self, client):
        assert client.get("/tasks/task-missing/workflow").status_code == 404
        assert client.post("/tasks/task-missing/retry").status_code == 404

    def test_replan_and_fail(self, client):
        create_and_propose(client)

        response = client.post("/tasks/task-001/replan", json={"feedback": "Smaller steps please"})
        assert response.status_code == 200
        assert response.json()["plan_ids"] == ["plan-2-1", "plan-2-2"]

        response = client.post("/tasks/task-001/fail", json={"reason": "Repository archived"})
        assert response.status_code == 200

        response = client.post("/tasks/task-001/retry")
        assert response.status_code == 200

    def test_blank_fail_reason_is_400(self, client):
        create_and_propose(client)

        assert client.post("/tasks/task-001/fail", json={"reason": "   "}).status_code == 400


class TestErrorMapping:
    def test_planner_failure_is_502(self, client, engine):
        client.post("/tasks", json=make_task().model_dump(mode="json"))
        engine.planner = MagicMock()
        engine.planner.generate_plans = AsyncMock(side_effect=RuntimeError("LLM unavailable"))

        response = client.post("/tasks/task-001/proposals")

        assert response.status_code == 502
        assert "LLM unavailable" in response.json()["detail"]

    def test_validation_failure_is_422_with_report(self, client, engine):
        client.post("/tasks", json=make_task().model_dump(mode="json"))
        cyclic = make_plan(
            "plan-cyclic",
            steps=[
                make_step("step-001", dependencies=["step-002"]),
                make_step("step-002", dependencies=["step-001"]),
            ],
        )
        engine.planner = MagicMock()
        engine.planner.generate_plans = AsyncMock(return_value=[cyclic])
        client.post("/tasks/task-001/proposals")
        client.post("/decisions", json=make_decision(plan_id="plan-cyclic").model_dump(mode="json"))

        response = client.post("/tasks/task-001/plans/plan-cyclic/run")

        assert response.status_code == 422
        assert response.json()["report"].startswith("Plan validation failed")


# -----------------------------------------------------------------------------
# Composition Root
# -----------------------------------------------------------------------------
@pytest.fixture
def keyless_client(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
    for provider in PROVIDERS:
        provider.cache_clear()
    yield TestClient(app)
    for provider in PROVIDERS:
        provider.cache_clear()


class TestWithoutOpenAIKey:
    def test_routes_that_do_not_plan_still_work(self, keyless_client):
        assert keyless_client.get("/tasks/task-missing/workflow").status_code == 404

        response = keyless_client.post("/tasks", json=make_task().model_dump(mode="json"))

        assert response.status_code == 201
        assert keyless_client.get("/tasks/task-001/workflow").json()["state"] == "awaiting_proposals"

    def test_planning_without_key_is_502(self, keyless_client):
        keyless_client.post("/tasks", json=make_task().model_dump(mode="json"))

        response = keyless_client.post("/tasks/task-001/proposals")

        assert response.status_code == 502
        assert keyless_client.get("/tasks/task-001/workflow").json()["state"] == "awaiting_proposals"
