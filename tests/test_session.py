import time
from datetime import datetime, timezone

import pytest

from edusync.client.errors import AuthenticationError, HTTPError, InvalidResponseError
from edusync.client.session import (
    DatabaseSessionStore,
    MemorySessionStore,
    Session,
    SessionState,
    create_session_store,
    decode_token_expiry,
)

from conftest import make_token, signed_in

USER = {"id": 7, "name": "Ada", "email": "ada@school.test", "role": "student"}


def test_login_persists_token_and_user(client, http):
    token = make_token()
    http.add("POST", "/login", (200, {"token": token, "user": USER}))
    store = MemorySessionStore()
    session = Session(client, store)

    user = session.login("ada@school.test", "secret")

    assert user.role == "student"
    assert session.is_authenticated and session.state == SessionState.AUTHENTICATED
    assert store.token == token
    assert store.user["email"] == "ada@school.test"
    assert http.calls[-1].body == {"email": "ada@school.test", "password": "secret"}


def test_login_without_role_persists_nothing(client, http):
    http.add("POST", "/login", (200, {"token": make_token(), "user": {"id": 7, "email": "ada@school.test"}}))
    store = MemorySessionStore()
    session = Session(client, store)

    with pytest.raises(InvalidResponseError):
        session.login("ada@school.test", "secret")

    assert store.token is None and store.user is None
    assert not session.is_authenticated


def test_login_without_token_persists_nothing(client, http):
    http.add("POST", "/login", (200, {"user": USER}))
    store = MemorySessionStore()
    with pytest.raises(InvalidResponseError):
        Session(client, store).login("ada@school.test", "secret")
    assert store.token is None


def test_login_failure_propagates_server_message(client, http):
    http.add("POST", "/login", (401, {"message": "Invalid email or password"}))
    with pytest.raises(HTTPError, match="Invalid email or password"):
        Session(client, MemorySessionStore()).login("ada@school.test", "nope")


def test_hydrate_restores_verified_session(client, http):
    token = make_token()
    http.add("GET", "/auth/check", (200, {"user": USER}))
    session = Session(client, MemorySessionStore(token, None))

    assert session.hydrate() == SessionState.AUTHENTICATED
    assert session.token == token
    assert session.user.name == "Ada"
    assert http.calls[-1].headers["Authorization"] == f"Bearer {token}"


def test_hydrate_with_rejected_token_clears_store(client, http):
    http.add("GET", "/auth/check", (401, {"message": "Invalid token"}))
    store = MemorySessionStore(make_token(), USER)
    session = Session(client, store)

    assert session.hydrate() == SessionState.UNAUTHENTICATED
    assert store.token is None and store.user is None
    assert session.token is None and session.user is None


def test_hydrate_with_malformed_user_clears_store(client, http):
    http.add("GET", "/auth/check", (200, {"user": {"id": 1, "role": ["student"]}}))
    store = MemorySessionStore("tok", None)
    session = Session(client, store)

    assert session.hydrate() == SessionState.UNAUTHENTICATED
    assert store.token is None
    assert not session.is_authenticated


def test_login_with_malformed_user_raises_invalid_response(client, http):
    http.add("POST", "/login", (200, {"token": make_token(), "user": {"id": 7, "role": ["student"]}}))
    store = MemorySessionStore()

    with pytest.raises(InvalidResponseError):
        Session(client, store).login("ada@school.test", "secret")

    assert store.token is None


def test_hydrate_without_stored_token_makes_no_request(client, http):
    assert Session(client, MemorySessionStore()).hydrate() == SessionState.UNAUTHENTICATED
    assert http.calls == []


def test_logout_clears_everything_and_notifies(client):
    session = signed_in(client, "teacher")
    seen = []
    session.add_logout_listener(lambda: seen.append((session.token, session.store.load())))

    session.logout()

    assert seen == [(None, (None, None))]
    assert session.user is None
    assert session.state == SessionState.UNAUTHENTICATED


def test_token_expiry_decoding():
    exp = 1_900_000_000
    assert decode_token_expiry(make_token(exp)) == datetime.fromtimestamp(exp, tz=timezone.utc)
    assert decode_token_expiry(make_token()) is None
    assert decode_token_expiry("opaque-token") is None
    assert decode_token_expiry(None) is None


def test_expired_token_logs_out_before_request(client, http):
    session = signed_in(client, "student", token=make_token(time.time() - 60))
    assert session.is_expired()
    with pytest.raises(AuthenticationError):
        session.require_token()
    assert session.token is None
    assert session.store.load() == (None, None)
    assert http.calls == []


def test_opaque_token_is_not_expired(client):
    session = signed_in(client, "student", token="opaque-token")
    assert session.is_expired() is False
    assert session.require_token() == "opaque-token"


def test_handle_auth_failure_only_for_401_403(client):
    session = signed_in(client, "student")
    assert session.handle_auth_failure(HTTPError("boom", 500)) is False
    assert session.is_authenticated
    assert session.handle_auth_failure(HTTPError("Forbidden", 403)) is True
    assert not session.is_authenticated


def test_database_store_round_trip(database):
    store = DatabaseSessionStore("tab-1")
    assert store.load() == (None, None)
    store.save("tok", USER)
    store.save("tok2", USER)
    assert store.load() == ("tok2", USER)
    assert DatabaseSessionStore("tab-2").load() == (None, None)
    store.clear()
    assert store.load() == (None, None)


def test_create_session_store_from_config():
    assert isinstance(create_session_store({"session": {"store": "memory"}}), MemorySessionStore)
    store = create_session_store({"session": {"profile": "work"}})
    assert isinstance(store, DatabaseSessionStore) and store.profile == "work"
