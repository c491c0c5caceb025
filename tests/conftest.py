import base64
import json
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import requests

from edusync.client.api_client import ApiClient
from edusync.client.loader import DashboardLoader
from edusync.client.schemas import User
from edusync.client.session import MemorySessionStore, Session, SessionState
from edusync.core import db

BASE_URL = "http://backend.test/api"

Reply = Union[Tuple[int, Any], Callable[["Call"], Tuple[int, Any]]]


def make_response(status: int, body: Any, url: str = BASE_URL) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    if body is None:
        response._content = b""
    elif isinstance(body, (bytes, str)):
        response._content = body.encode() if isinstance(body, str) else body
    else:
        response._content = json.dumps(body).encode()
    response.encoding = "utf-8"
    return response


def make_token(exp: Optional[float] = None) -> str:
    """Unsigned JWT-shaped token carrying exp."""
    def part(data: Dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")
    payload = {"sub": "1"}
    if exp is not None:
        payload["exp"] = exp
    return f"{part({'alg': 'HS256'})}.{part(payload)}.signature"


class Call:
    def __init__(self, method: str, path: str, headers: Dict[str, str], data: Optional[str]):
        self.method = method
        self.path = path
        self.headers = headers
        self.body = json.loads(data) if data else None


class FakeHTTP:
    """Stands in for requests.Session: routes (method, path) to canned replies, records calls."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Reply] = {}
        self.calls: List[Call] = []
        self.lock = threading.Lock()
        self.error: Optional[Exception] = None

    def add(self, method: str, path: str, reply: Reply) -> None:
        self.routes[(method, path)] = reply

    def request(self, method, url, headers=None, data=None, timeout=None):
        path = url[len(BASE_URL):]
        call = Call(method, path, dict(headers or {}), data)
        with self.lock:
            self.calls.append(call)
        if self.error is not None:
            raise self.error
        reply = self.routes.get((method, path), (404, {"message": f"No route for {method} {path}"}))
        status, body = reply(call) if callable(reply) else reply
        return make_response(status, body, url)

    def paths(self, method: Optional[str] = None) -> List[str]:
        with self.lock:
            return [c.path for c in self.calls if method is None or c.method == method]

    def writes(self) -> List[Call]:
        with self.lock:
            return [c for c in self.calls if c.method != "GET"]


@pytest.fixture
def http() -> FakeHTTP:
    return FakeHTTP()


@pytest.fixture
def client(http) -> ApiClient:
    return ApiClient(base_url=BASE_URL, http=http)


def signed_in(client: ApiClient, role: str, token: Optional[str] = None) -> Session:
    token = token or make_token()
    user = User(id=1, name=f"Test {role.title()}", email=f"{role}@school.test", role=role)
    store = MemorySessionStore(token, user.model_dump())
    session = Session(client, store)
    session.token = token
    session.user = user
    session.state = SessionState.AUTHENTICATED
    return session


@pytest.fixture
def student_session(client) -> Session:
    return signed_in(client, "student")


@pytest.fixture
def teacher_session(client) -> Session:
    return signed_in(client, "teacher")


@pytest.fixture
def student_loader(student_session):
    loader = DashboardLoader(student_session)
    loader.state.role = "student"
    yield loader
    loader.close()


@pytest.fixture
def teacher_loader(teacher_session):
    loader = DashboardLoader(teacher_session)
    loader.state.role = "teacher"
    yield loader
    loader.close()


@pytest.fixture
def database(tmp_path):
    db.dispose_db()
    db.init_db({"database": {"path": str(tmp_path / "edusync.db")}})
    yield
    db.dispose_db()
