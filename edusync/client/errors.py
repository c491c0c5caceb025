"""
Error types raised by the EduSync client layer.

HTTP helper: NetworkError, HTTPError (alias RequestError), ParseError.
Handlers: ValidationError (before any request), InvalidResponseError (JSON
missing a required field), AuthenticationError (token missing/expired/rejected).
"""
from typing import Optional


class EduSyncError(Exception):
    """Base for all client errors. str(error) is the user-visible message."""


class NetworkError(EduSyncError):
    """The request could not be sent or no response was received."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class HTTPError(EduSyncError):
    """Non-2xx response. Message is '<detail> (Status: <code>)'."""

    def __init__(self, detail: str, status: int):
        super().__init__(f"{detail} (Status: {status})")
        self.detail = detail
        self.status = status


RequestError = HTTPError


class ParseError(EduSyncError):
    """Success response whose body is not JSON."""


class ValidationError(EduSyncError):
    """Locally detected invalid input; never reaches the network."""


class InvalidResponseError(EduSyncError):
    """Valid JSON that lacks a field the caller requires."""


class AuthenticationError(EduSyncError):
    """No usable token. Recovery is logging in again, not retrying."""


class EnrollmentError(HTTPError):
    """Enrollment failure rewritten into a friendlier message."""

    def __init__(self, message: str, status: int):
        super().__init__(message, status)
        # Friendly messages are shown as-is, without the status suffix
        self.args = (message,)

    def __str__(self) -> str:
        return self.detail
