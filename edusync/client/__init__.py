"""
Backend client: HTTP helper, session, dashboard loader and mutation handlers.
Nothing here imports tkinter.
"""
from .api_client import ApiClient
from .errors import (
    AuthenticationError,
    EduSyncError,
    EnrollmentError,
    HTTPError,
    InvalidResponseError,
    NetworkError,
    ParseError,
    RequestError,
    ValidationError,
)
from .loader import DashboardLoader
from .mutations import StudentActions, TeacherActions
from .session import MemorySessionStore, Session

__all__ = [
    "ApiClient",
    "AuthenticationError",
    "DashboardLoader",
    "EduSyncError",
    "EnrollmentError",
    "HTTPError",
    "InvalidResponseError",
    "MemorySessionStore",
    "NetworkError",
    "ParseError",
    "RequestError",
    "Session",
    "StudentActions",
    "TeacherActions",
    "ValidationError",
]
