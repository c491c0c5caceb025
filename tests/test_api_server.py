import time
from types import SimpleNamespace

from fastapi.testclient import TestClient

from edusync.api.server import create_app
from edusync.client.loader import DashboardLoader
from edusync.client.schemas import Course
from edusync.core.task_manager import TaskManager

from conftest import make_token, signed_in


def make_app(client, token):
    session = signed_in(client, "teacher", token=token)
    loader = DashboardLoader(session)
    loader.state.role = "teacher"
    loader.state.courses = [Course(course_id=4, title="Algebra")]
    return SimpleNamespace(session=session, loader=loader, task_manager=TaskManager())


def test_session_endpoint_never_exposes_token(client):
    exp = time.time() + 3600
    token = make_token(exp)
    app = make_app(client, token)
    response = TestClient(create_app(app)).get("/api/session")

    assert response.status_code == 200
    body = response.json()
    assert body["authenticated"] is True
    assert body["role"] == "teacher"
    assert body["token_expired"] is False
    assert body["token_expires_at"] is not None
    assert token not in response.text
    app.loader.close()


def test_dashboard_endpoint_serializes_state(client):
    app = make_app(client, make_token())
    body = TestClient(create_app(app)).get("/api/dashboard").json()

    assert body["role"] == "teacher"
    assert body["courses"][0]["title"] == "Algebra"
    assert body["selected"] is None
    app.loader.close()


def test_tasks_endpoint(client):
    app = make_app(client, make_token())
    assert TestClient(create_app(app)).get("/api/tasks").json() == {"active_tasks": []}
    app.loader.close()
