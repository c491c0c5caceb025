"""
Account endpoints outside the session lifecycle: registration and profile.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from .api_client import ApiClient
from .errors import InvalidResponseError, ValidationError
from .schemas import User

logger = logging.getLogger(__name__)

ROLES = ("student", "teacher")


def register(
    client: ApiClient,
    name: str,
    email: str,
    password: str,
    role: str = "student",
    grade_level: Optional[str] = None,
    enrollment_year: Optional[str] = None,
    department: Optional[str] = None,
) -> Any:
    """POST /register. Student fields or teacher department are sent by role."""
    name = (name or "").strip()
    email = (email or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if not email:
        raise ValidationError("Email is required")
    if not password:
        raise ValidationError("Password is required")
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

    payload: Dict[str, Any] = {
        "Name": name,
        "Email": email,
        "Password": password,
        "Role": role,
    }
    if role == "student":
        payload["GradeLevel"] = grade_level or ""
        payload["EnrollmentYear"] = str(enrollment_year) if enrollment_year else ""
    else:
        payload["Department"] = department or ""

    logger.info(f"Registering {email} as {role}")
    return client.post("/register", data=payload)


def fetch_profile(client: ApiClient, token: str) -> Tuple[User, Dict[str, Any]]:
    """GET /profile -> (user, student profile). Missing user is an invalid response."""
    data = client.get("/profile", token=token)
    user_data = data.get("user") if isinstance(data, dict) else None
    if not isinstance(user_data, dict):
        raise InvalidResponseError("Profile response has no user")
    student = data.get("student") if isinstance(data.get("student"), dict) else {}
    return User.model_validate(user_data), student


def student_profile_update(grade_level: Optional[str] = None, enrollment_year: Optional[Any] = None) -> Dict[str, Any]:
    """Payload for PUT /student/profile; at least one field is required."""
    data: Dict[str, Any] = {}
    if grade_level:
        data["grade_level"] = str(grade_level).strip()
    if enrollment_year not in (None, ""):
        try:
            data["enrollment_year"] = int(enrollment_year)
        except (TypeError, ValueError):
            raise ValidationError("Enrollment year must be a number")
    if not data:
        raise ValidationError("Please provide at least one field to update")
    return data


def update_student_profile(
    client: ApiClient,
    token: str,
    grade_level: Optional[str] = None,
    enrollment_year: Optional[Any] = None,
) -> Any:
    """PUT /student/profile with whichever fields are given."""
    data = student_profile_update(grade_level, enrollment_year)
    return client.put("/student/profile", token=token, data=data)
