"""
JSON REST client for the EduSync backend.
One request per call: no retries. Errors are normalized into client errors.
"""
import json
import logging
from typing import Any, Dict, Optional

import requests

from .errors import HTTPError, NetworkError, ParseError

DEFAULT_BASE_URL = "http://localhost:8080/api"


def _masked_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of headers safe for logs (bearer token hidden)."""
    safe = dict(headers)
    if "Authorization" in safe:
        safe["Authorization"] = "Bearer ***"
    return safe


def _error_message(body_text: str, status: int) -> str:
    """Best-effort message from an error body: error.message, message, raw text, generic."""
    fallback = f"Request failed (Status: {status})"
    try:
        error_data = json.loads(body_text)
    except ValueError:
        return body_text or fallback
    message = None
    if isinstance(error_data, dict):
        error = error_data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        message = message or error_data.get("message")
    return message or fallback


class ApiClient:
    """Performs requests against a fixed API base with optional bearer token."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config_data: Dict[str, Any]) -> "ApiClient":
        backend = config_data.get("backend") or {}
        timeout = backend.get("timeout")
        return cls(
            base_url=backend.get("base_url") or DEFAULT_BASE_URL,
            timeout=float(timeout) if timeout else None,
        )

    def request(
        self,
        path: str,
        method: str = "GET",
        token: Optional[str] = None,
        data: Any = None,
    ) -> Any:
        """
        Send one request and return the parsed JSON body ({} for an empty body).
        Raises HTTPError on non-2xx, ParseError on a non-JSON success body,
        NetworkError when no response was received.
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        body = json.dumps(data) if data is not None else None

        self.logger.debug(
            f"Making {method} request to {url} data={data} headers={_masked_headers(headers)}"
        )

        try:
            response = self.http.request(
                method, url, headers=headers, data=body, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Network error for {method} {path}: {e}")
            raise NetworkError(f"Network error: {e}", cause=e) from e

        body_text = response.text or ""
        status = response.status_code

        if not 200 <= status < 300:
            message = _error_message(body_text, status)
            self.logger.error(f"Error in {path}: {message} (Status: {status})")
            raise HTTPError(message, status)

        if not body_text.strip():
            result: Any = {}
        else:
            try:
                result = json.loads(body_text)
            except ValueError as e:
                self.logger.error(f"Non-JSON response from {path}: {body_text[:200]!r}")
                raise ParseError("Failed to parse response as JSON") from e

        self.logger.debug(f"Response from {path}: {result}")
        return result

    def get(self, path: str, token: Optional[str] = None) -> Any:
        return self.request(path, "GET", token)

    def post(self, path: str, token: Optional[str] = None, data: Any = None) -> Any:
        return self.request(path, "POST", token, data)

    def put(self, path: str, token: Optional[str] = None, data: Any = None) -> Any:
        return self.request(path, "PUT", token, data)

    def delete(self, path: str, token: Optional[str] = None) -> Any:
        return self.request(path, "DELETE", token)
