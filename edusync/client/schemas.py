"""
Pydantic models for records exchanged with the backend and for dashboard state.
Unknown fields are kept so views can show whatever the backend sends.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Record(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class User(Record):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class Course(Record):
    """Course as seen by either role: teacher_name for students, counts for teachers."""

    course_id: int
    title: str = "Untitled Course"
    description: Optional[str] = None
    subject: Optional[str] = None
    color: Optional[str] = None
    teacher_name: Optional[str] = None
    students: int = 0
    assignments: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("title"):
            data["title"] = "Untitled Course"
        if not data.get("subject") and data.get("subject_area"):
            data["subject"] = data["subject_area"]
        for key in ("students", "assignments"):
            if not isinstance(data.get(key), int) or isinstance(data.get(key), bool):
                data[key] = 0
        return data


class Student(Record):
    student_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    grade_level: Optional[str] = None
    enrollment_year: Optional[int] = None


class Assignment(Record):
    assignment_id: int
    course_id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    due_date: Optional[str] = None  # absent means no due date
    max_points: Optional[int] = None
    status: Optional[str] = None


class Submission(Record):
    """score is canonical; legacy 'grade' only fills it when score is absent."""

    submission_id: int
    assignment_id: Optional[int] = None
    student_id: Optional[int] = None
    content: str = ""
    score: Optional[Union[float, str]] = None
    feedback: Optional[str] = None
    status: Optional[str] = None
    submitted_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _score_alias(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        grade = data.pop("grade", None)
        if data.get("score") is None and grade is not None:
            data["score"] = grade
        return data


class Announcement(Record):
    announcement_id: int
    course_id: Optional[int] = None
    title: str = ""
    content: str = ""
    created_at: Optional[str] = None
    is_pinned: bool = False
    course: Optional[Any] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("content") and data.get("message"):
            data["content"] = data["message"]
        if not data.get("created_at"):
            data["created_at"] = data.get("postedAt") or data.get("date")
        if data.get("is_pinned") is None:
            data["is_pinned"] = False
        return data


class Material(Record):
    material_id: int
    course_id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    type: Optional[str] = None
    file_path: Optional[str] = None
    uploaded_at: Optional[str] = None


class AssignmentStats(Record):
    assignment_id: Optional[int] = None
    average_score: Optional[float] = None
    submission_count: Optional[int] = None


class UserStats(Record):
    total_students: int = 0
    total_assignments: int = 0


class CourseDetail(BaseModel):
    """Everything loaded for one selected course."""

    course: Course
    details: Dict[str, Any] = Field(default_factory=dict)
    assignments: List[Assignment] = Field(default_factory=list)
    materials: List[Material] = Field(default_factory=list)
    announcements: List[Announcement] = Field(default_factory=list)
    submissions: List[Submission] = Field(default_factory=list)
    students: List[Student] = Field(default_factory=list)
    stats: Dict[int, AssignmentStats] = Field(default_factory=dict)


class DashboardState(BaseModel):
    """Latest fetched snapshot for one role's dashboard."""

    role: Optional[str] = None
    user: Optional[User] = None
    student_profile: Dict[str, Any] = Field(default_factory=dict)
    summary: Dict[str, Any] = Field(default_factory=dict)
    courses: List[Course] = Field(default_factory=list)
    assignments: List[Assignment] = Field(default_factory=list)
    announcements: List[Announcement] = Field(default_factory=list)
    materials: List[Material] = Field(default_factory=list)
    submissions: List[Submission] = Field(default_factory=list)
    upcoming: List[Assignment] = Field(default_factory=list)
    stats: UserStats = Field(default_factory=UserStats)
    selected: Optional[CourseDetail] = None
    errors: Dict[str, str] = Field(default_factory=dict)  # load step -> message
