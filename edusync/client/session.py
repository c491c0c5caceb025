"""
Authentication session: token + current user, persisted through a SessionStore.

States: unauthenticated -> verifying -> authenticated, back to unauthenticated
on logout, failed verification, or expiry. One Session per app instance,
passed explicitly to the loader and mutation handlers.
"""
import base64
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from .api_client import ApiClient
from .errors import AuthenticationError, EduSyncError, HTTPError, InvalidResponseError
from .schemas import User

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)


class SessionState:
    """Lifecycle of a Session."""
    UNAUTHENTICATED = "unauthenticated"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"


class SessionStore(ABC):
    """Persisted mirror of the session (token string + serialized user)."""

    @abstractmethod
    def load(self) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        pass

    @abstractmethod
    def save(self, token: str, user: Optional[Dict[str, Any]]) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class MemorySessionStore(SessionStore):
    """Keeps the session in process only; gone when the app exits."""

    def __init__(self, token: Optional[str] = None, user: Optional[Dict[str, Any]] = None):
        self.token = token
        self.user = user

    def load(self) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        return self.token, self.user

    def save(self, token: str, user: Optional[Dict[str, Any]]) -> None:
        self.token = token
        self.user = user

    def clear(self) -> None:
        self.token = None
        self.user = None


class DatabaseSessionStore(SessionStore):
    """Keeps the session in the app database, one row per profile."""

    def __init__(self, profile: str = "default"):
        self.profile = profile

    def load(self) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        from edusync.core.models import load_stored_session
        return load_stored_session(self.profile)

    def save(self, token: str, user: Optional[Dict[str, Any]]) -> None:
        from edusync.core.models import save_stored_session
        save_stored_session(self.profile, token, user)

    def clear(self) -> None:
        from edusync.core.models import clear_stored_session
        clear_stored_session(self.profile)


def create_session_store(config_data: Dict[str, Any]) -> SessionStore:
    """Build the store named by session.store ('database' or 'memory')."""
    session_config = config_data.get("session") or {}
    kind = (session_config.get("store") or "database").lower()
    if kind == "memory":
        return MemorySessionStore()
    return DatabaseSessionStore(session_config.get("profile") or "default")


def decode_token_expiry(token: Optional[str]) -> Optional[datetime]:
    """Read the JWT 'exp' claim without verifying the signature. None if absent or undecodable."""
    if not token:
        return None
    try:
        payload_part = token.split(".")[1]
        padded = payload_part + "=" * (-len(payload_part) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        exp = payload.get("exp")
        if exp is None:
            return None
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (IndexError, ValueError, TypeError, AttributeError, OverflowError) as e:
        logger.debug(f"Could not decode token payload: {e}")
        return None


class Session:
    """Holds token and user; the backend stays the authority on token validity."""

    def __init__(self, client: ApiClient, store: Optional[SessionStore] = None):
        self.client = client
        self.store = store or MemorySessionStore()
        self.token: Optional[str] = None
        self.user: Optional[User] = None
        self.state = SessionState.UNAUTHENTICATED
        self._logout_listeners: List[Callable[[], None]] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user is not None

    @property
    def role(self) -> Optional[str]:
        return self.user.role if self.user else None

    def add_logout_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after logout has cleared all session state."""
        self._logout_listeners.append(callback)

    def hydrate(self) -> str:
        """Restore a persisted token and verify it with GET /auth/check."""
        stored_token, _stored_user = self.store.load()
        if not stored_token:
            self.state = SessionState.UNAUTHENTICATED
            self.logger.info("No stored token; session unauthenticated")
            return self.state

        self.state = SessionState.VERIFYING
        try:
            data = self.client.get("/auth/check", token=stored_token)
            user_data = data.get("user") if isinstance(data, dict) else None
            if not isinstance(user_data, dict):
                raise InvalidResponseError("Token check response has no user")
            user = User.model_validate(user_data)
        except EduSyncError as e:
            self.logger.warning(f"Invalid token: {e}")
            self._clear()
            return self.state
        except SchemaError as e:
            self.logger.warning(f"Malformed user in token check: {e.errors()[0]['msg']}")
            self._clear()
            return self.state

        self.token = stored_token
        self.user = user
        self.store.save(stored_token, user.model_dump())
        self.state = SessionState.AUTHENTICATED
        self.logger.info(f"Session restored for {user.email} ({user.role})")
        return self.state

    def login(self, email: str, password: str) -> User:
        """POST /login; persist token and user only when both (and user.role) are present."""
        data = self.client.post("/login", data={"email": email, "password": password})
        if not isinstance(data, dict):
            raise InvalidResponseError("Invalid user data received from server")
        token = data.get("token")
        user_data = data.get("user")
        if not isinstance(user_data, dict) or not user_data.get("role"):
            self.logger.error(f"Invalid user data received: {data}")
            raise InvalidResponseError("Invalid user data received from server")
        if not token:
            self.logger.error("Login response has no token")
            raise InvalidResponseError("Login response did not include a token")

        try:
            user = User.model_validate(user_data)
        except SchemaError as e:
            self.logger.error(f"Invalid user data received: {e.errors()[0]['msg']}")
            raise InvalidResponseError("Invalid user data received from server") from e
        self.store.save(token, user.model_dump())
        self.token = token
        self.user = user
        self.state = SessionState.AUTHENTICATED
        self.logger.info(f"Logged in as {user.email} ({user.role})")
        return user

    def logout(self) -> None:
        """Clear persisted and in-memory session, then notify listeners."""
        self._clear()
        self.logger.info("Logged out")
        for callback in list(self._logout_listeners):
            try:
                callback()
            except Exception as e:
                self.logger.error(f"Error in logout listener: {e}", exc_info=True)

    def _clear(self) -> None:
        # Persisted copy first so nothing can re-hydrate a half-cleared session
        self.store.clear()
        self.token = None
        self.user = None
        self.state = SessionState.UNAUTHENTICATED

    def token_expiry(self) -> Optional[datetime]:
        return decode_token_expiry(self.token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when the token's exp claim is in the past. No readable claim: the backend decides."""
        expiry = self.token_expiry()
        if expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return expiry < now

    def require_token(self) -> str:
        """Token for an authenticated call; logs out and raises when it is expired."""
        if not self.token:
            raise AuthenticationError("Not logged in")
        if self.is_expired():
            self.logger.info("Token expired, logging out")
            self.logout()
            raise AuthenticationError("Session expired, please log in again")
        return self.token

    def handle_auth_failure(self, error: Exception) -> bool:
        """Log out if error is a 401/403 response. Returns True when it did."""
        if isinstance(error, HTTPError) and error.status in AUTH_FAILURE_STATUSES:
            self.logger.info(f"Backend rejected token ({error.status}), logging out")
            self.logout()
            return True
        return False
