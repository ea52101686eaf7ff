"""HTTP tests for the session routes."""

import json

import pytest
from fastapi.testclient import TestClient

from formative import config
from formative.api.main import app
from formative.api.routes import sessions
from formative.errors import ConfigurationError, LLMTimeout
from formative.stages.schemas import StageKind


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[sessions.get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def session_id(client):
    response = client.post("/v1/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


def _statuses(body):
    return [stage["status"] for stage in body["state"]["stages"]]


class TestSessions:

    def test_create_session(self, client):
        body = client.post("/v1/sessions").json()
        assert _statuses(body) == ["active"] + ["locked"] * 5
        assert body["state"]["current_stage"] == "requirement_collection"

    def test_list_sessions(self, client, session_id):
        body = client.get("/v1/sessions").json()
        assert session_id in body["sessions"]

    def test_get_session(self, client, session_id):
        body = client.get(f"/v1/sessions/{session_id}").json()
        assert body["session_id"] == session_id
        assert body["outputs"] == {}

    def test_unknown_session_404(self, client):
        assert client.get("/v1/sessions/nope").status_code == 404
        assert client.post("/v1/sessions/nope/reset").status_code == 404
        assert client.post("/v1/sessions/nope/stages/1/run", json={}).status_code == 404


class TestRunStage:

    def test_run_active_stage(self, client, session_id, backend, stage_reply):
        backend.queue(stage_reply(StageKind.REQUIREMENT_COLLECTION))

        response = client.post(
            f"/v1/sessions/{session_id}/stages/requirement_collection/run",
            json={"payload": {"message": "A recipe app"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["extracted"]["projectName"] == "Recipe Box"
        assert _statuses(body)[:2] == ["completed", "active"]

    def test_run_by_ordinal_without_body(self, client, session_id, backend, stage_reply):
        backend.queue(stage_reply(StageKind.REQUIREMENT_COLLECTION))
        response = client.post(f"/v1/sessions/{session_id}/stages/1/run")
        assert response.status_code == 200

    def test_locked_stage_409(self, client, session_id, backend):
        response = client.post(f"/v1/sessions/{session_id}/stages/tech_stack/run", json={})

        assert response.status_code == 409
        assert response.json()["errorKind"] == "stage_not_active"
        assert backend.calls == []

    def test_llm_failure_502(self, client, session_id, backend):
        backend.queue(*[LLMTimeout("slow") for _ in range(3)])

        response = client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["errorKind"] == "timeout"
        assert _statuses(body)[0] == "active"

    def test_busy_session_409(self, client, session_id, backend):
        sessions._busy_sessions.add(session_id)
        try:
            response = client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})
        finally:
            sessions._busy_sessions.discard(session_id)

        assert response.status_code == 409
        assert backend.calls == []

    def test_partial_requirements_keep_stage_active(self, client, session_id, backend):
        partial = {
            "extracted": {"productGoal": "Save family recipes"},
            "missingFields": ["targetUsers"],
            "nextQuestion": "Who will use it?",
        }
        backend.queue(json.dumps(partial))

        response = client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["needsMoreInput"] is True
        assert body["data"]["nextQuestion"] == "Who will use it?"
        assert _statuses(body)[:2] == ["active", "locked"]

    def test_unknown_stage_404(self, client, session_id):
        response = client.post(f"/v1/sessions/{session_id}/stages/deployment/run", json={})
        assert response.status_code == 404


class TestStageOutput:

    def test_locked_stage_403(self, client, session_id):
        response = client.get(f"/v1/sessions/{session_id}/stages/mvp_boundary")
        assert response.status_code == 403

    def test_active_stage_without_output(self, client, session_id):
        body = client.get(f"/v1/sessions/{session_id}/stages/1").json()
        assert body == {"stage": "requirement_collection", "status": "active", "data": None}

    def test_completed_stage_output(self, client, session_id, backend, stage_reply):
        backend.queue(stage_reply(StageKind.REQUIREMENT_COLLECTION))
        client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})

        body = client.get(f"/v1/sessions/{session_id}/stages/requirement_collection").json()

        assert body["status"] == "completed"
        assert body["data"]["missingFields"] == []


class TestResetAndHealth:

    def test_reset(self, client, session_id, backend, stage_reply):
        backend.queue(stage_reply(StageKind.REQUIREMENT_COLLECTION))
        client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})

        body = client.post(f"/v1/sessions/{session_id}/reset").json()

        assert _statuses(body) == ["active"] + ["locked"] * 5
        assert client.get(f"/v1/sessions/{session_id}").json()["outputs"] == {}

    def test_reset_while_running_409(self, client, session_id, backend, stage_reply):
        reset_statuses = []

        def reply_after_reset_attempt():
            reset_statuses.append(client.post(f"/v1/sessions/{session_id}/reset").status_code)
            return stage_reply(StageKind.REQUIREMENT_COLLECTION)

        backend.queue(reply_after_reset_attempt)
        response = client.post(f"/v1/sessions/{session_id}/stages/1/run", json={})

        assert reset_statuses == [409]
        assert response.status_code == 200
        assert _statuses(response.json())[:2] == ["completed", "active"]

        # once the run has finished, reset goes through and sticks
        body = client.post(f"/v1/sessions/{session_id}/reset").json()
        assert _statuses(body) == ["active"] + ["locked"] * 5
        assert client.get(f"/v1/sessions/{session_id}").json()["outputs"] == {}

    def test_reset_busy_session_409(self, client, session_id):
        sessions._busy_sessions.add(session_id)
        try:
            response = client.post(f"/v1/sessions/{session_id}/reset")
        finally:
            sessions._busy_sessions.discard(session_id)

        assert response.status_code == 409

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["prompts_loaded"] == 6
        assert body["contracts_loaded"] == 6


class TestStartup:
    """Test settings validation in the application lifespan."""

    @pytest.fixture(autouse=True)
    def fresh_settings(self, monkeypatch):
        monkeypatch.setattr(config, "_settings", None)
        monkeypatch.setattr(sessions, "_orchestrator", None)
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.delenv("LLM_BASE_URL", raising=False)
        monkeypatch.delenv("FORMATIVE_DATABASE_PATH", raising=False)

    def test_missing_api_key_aborts_startup(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "deepseek")

        with pytest.raises(ConfigurationError) as exc_info:
            with TestClient(app):
                pass
        assert "LLM_API_KEY" in exc_info.value.message

    def test_valid_settings_start(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")

        with TestClient(app) as test_client:
            assert test_client.get("/health").status_code == 200
            assert test_client.post("/v1/sessions").status_code == 200
