"""
HTTP surface, run through the real app lifespan with in-memory storage,
Gemini mock mode and no git watcher.
"""

from typing import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from container import build_container

HANDLER_SOURCE = """def handler(event):
    return event["body"]
"""


class NoLint:
    async def lint(self, code):
        return None


def _test_container():
    return build_container(
        storage_backend="memory",
        workspace_root=None,
        project_name="demo",
        gemini_api_key=None,
        lint_service_url="http://127.0.0.1:9",
        watch_git=False,
    )


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    from main import app

    with patch("main.build_container", side_effect=_test_container):
        with TestClient(app) as test_client:
            test_client.app.state.services.orchestrator.lint = NoLint()
            yield test_client


def _flush(client: TestClient) -> None:
    client.portal.call(client.app.state.services.queue.flush)


# ── Health ───────────────────────────────────────────────────────────────────


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "contextkeeper"}


# ── Events ───────────────────────────────────────────────────────────────────


class TestEventRoutes:

    def test_open_is_recorded(self, client):
        response = client.post("/events/open", json={"file_path": "app/handler.py", "language_id": "python"})
        assert response.json() == {"accepted": True}
        _flush(client)

        events = client.get("/events/recent").json()
        assert events[0]["event_type"] == "file_open"
        assert events[0]["file_path"] == "app/handler.py"
        assert client.get("/events/last-active-file").json() == {"file_path": "app/handler.py"}

    def test_ignored_path_is_not_accepted(self, client):
        response = client.post("/events/open", json={"file_path": "node_modules/x/index.js"})
        assert response.json() == {"accepted": False}

    def test_edit_is_debounced(self, client):
        response = client.post("/events/edit", json={
            "file_path": "app/handler.py",
            "content": HANDLER_SOURCE,
            "changes": [{"start_line": 1, "end_line": 1, "text": "x"}],
        })
        assert response.json() == {"accepted": True}
        assert "app/handler.py" in client.app.state.services.ingestion.debouncer

    def test_edit_rejects_bad_payload(self, client):
        response = client.post("/events/edit", json={"file_path": "a.py"})
        assert response.status_code == 422

    def test_commit(self, client):
        response = client.post("/events/commit", json={"hash": "abc1234", "message": "Fix login"})
        assert response.status_code == 200
        _flush(client)
        events = client.get("/events/recent").json()
        assert events[0]["event_type"] == "git_commit"
        assert events[0]["file_path"] == "root"

    def test_editor_state(self, client):
        response = client.post("/editor/state", json={
            "active_file": "a.py", "active_content": "x = 1", "cursor_line": 3, "open_files": ["a.py", "a.py", "b.py"],
        })
        body = response.json()
        assert body["active_file"] == "a.py"
        assert body["cursor"] == {"file": "a.py", "line": 3, "column": 0}
        assert body["open_files"] == ["a.py", "b.py"]

    def test_recent_limit_validation(self, client):
        assert client.get("/events/recent?limit=0").status_code == 422


# ── Sessions ─────────────────────────────────────────────────────────────────


class TestSessionRoutes:

    def test_current_session_exists_after_startup(self, client):
        response = client.get("/sessions/current")
        assert response.status_code == 200
        assert response.json()["summary"].startswith("Session started at ")
        assert response.json()["project"] == "demo"

    def test_end_session(self, client):
        session_id = client.get("/sessions/current").json()["id"]
        response = client.post("/sessions/end")
        assert response.json() == {"ended": True, "session_id": session_id}
        assert client.get("/sessions/current").status_code == 404
        assert client.post("/sessions/end").status_code == 404

    def test_similar_sessions(self, client):
        client.post("/sessions/end")
        results = client.get("/sessions/similar", params={"q": "manual_end", "k": 1}).json()
        assert len(results) == 1
        assert results[0]["summary"] == "manual_end"
        assert results[0]["score"] == pytest.approx(1.0)

    def test_similar_requires_query(self, client):
        assert client.get("/actions/similar").status_code == 422


# ── Pipeline ─────────────────────────────────────────────────────────────────


class TestPipelineRoutes:

    def test_run_on_focused_file(self, client):
        client.post("/events/focus", json={"file_path": "app/handler.py", "content": HANDLER_SOURCE})
        response = client.post("/pipeline/run")
        assert response.status_code == 200
        body = response.json()
        assert [f["file_path"] for f in body["file_analyses"]] == ["app/handler.py"]
        assert body["file_analyses"][0]["llm_analysis"]["risk_level"] == "medium"
        assert body["summary"]["total_files"] == 1

    def test_run_with_nothing_open(self, client):
        response = client.post("/pipeline/run", json={"analyze_all_files": False})
        assert response.status_code == 200
        assert response.json()["file_analyses"] == []

    def test_idle(self, client):
        client.post("/events/focus", json={"file_path": "app/handler.py", "content": HANDLER_SOURCE})
        response = client.post("/pipeline/idle")
        assert response.status_code == 200
        assert response.json()["recommendations"]
