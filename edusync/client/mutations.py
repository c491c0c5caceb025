"""
Create/update/delete handlers for both roles.

Each handler validates its input before touching the network, issues one
write through the loader (so 401/403 log the session out), and on success
merges the result into the loader's state. On failure the state is left
as it was and the error propagates.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .accounts import student_profile_update
from .errors import EduSyncError, EnrollmentError, HTTPError, ValidationError
from .formatters import parse_timestamp
from .loader import DashboardLoader, order_announcements
from .schemas import (
    Announcement,
    Assignment,
    AssignmentStats,
    Course,
    DashboardState,
    Material,
    Submission,
)

T = TypeVar("T", bound=BaseModel)

DEFAULT_MAX_POINTS = 100
DEFAULT_MATERIAL_TYPE = "document"

NO_CLASSROOM_MESSAGE = "No classroom exists with this Course ID. Please check the ID and try again."
TEACHER_MISMATCH_MESSAGE = "The teacher name does not match the course. Please check the teacher name and try again."


# --- validation -----------------------------------------------------------

def positive_id(value: Any, label: str = "ID") -> int:
    """Coerce value to an int > 0 or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a positive number")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{label} must be a positive number")
    try:
        number = int(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a positive number")
    if number <= 0:
        raise ValidationError(f"{label} must be a positive number")
    return number


def required_text(value: Any, label: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{label} is required")
    return text


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def iso_due_date(value: Any) -> Optional[str]:
    """Normalize a due date to ISO-8601 UTC ('2025-05-18T14:30:00Z'). Empty means no due date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.astimezone()
    else:
        moment = parse_timestamp(str(value).strip())
        if moment is None:
            raise ValidationError(f"Invalid due date: {value}")
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def numeric_score(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("Score must be a number")
    try:
        score = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError("Score must be a number")
    if score != score or score < 0:
        raise ValidationError("Score must be a number of at least 0")
    return score


# --- merging --------------------------------------------------------------

def upsert(items: List[T], entity: T, key: str, front: bool = False) -> List[T]:
    """Replace the entry sharing entity's key in place, or insert it. Never leaves duplicates."""
    ident = getattr(entity, key)
    merged: List[T] = []
    replaced = False
    for item in items:
        if getattr(item, key) == ident:
            if not replaced:
                merged.append(entity)
                replaced = True
            continue
        merged.append(item)
    if not replaced:
        merged = [entity] + merged if front else merged + [entity]
    return merged


def remove(items: List[T], key: str, ident: Any) -> List[T]:
    return [item for item in items if getattr(item, key) != ident]


def find(items: List[T], key: str, ident: Any) -> Optional[T]:
    for item in items:
        if getattr(item, key) == ident:
            return item
    return None


def returned_entity(response: Any, wrapper: str, key: str) -> Optional[Dict[str, Any]]:
    """The entity in a write response: {wrapper: {...}} or the bare object, when it carries key."""
    if not isinstance(response, dict):
        return None
    candidate = response.get(wrapper) if isinstance(response.get(wrapper), dict) else response
    if candidate.get(key) is None and candidate.get("id") is not None:
        candidate = {**candidate, key: candidate["id"]}
    return candidate if candidate.get(key) is not None else None


class BaseActions:
    """Shared write path and state access for role handlers."""

    def __init__(self, loader: DashboardLoader):
        self.loader = loader
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def state(self) -> DashboardState:
        return self.loader.state

    def _write(self, method: str, path: str, data: Any = None) -> Any:
        self.logger.info(f"{method} {path}")
        try:
            return self.loader.call(method, path, data)
        except EduSyncError as e:
            self.logger.error(f"{method} {path} failed: {e}")
            raise

    def _model(self, model: Type[T], data: Dict[str, Any]) -> Optional[T]:
        try:
            return model.model_validate(data)
        except SchemaError as e:
            self.logger.warning(f"Ignoring malformed {model.__name__} in response: {e.errors()[0]['msg']}")
            return None

    def _selected_course_id(self) -> Optional[int]:
        return self.state.selected.course.course_id if self.state.selected else None

    def _merge_submission(self, submission: Submission) -> None:
        own = find(self.state.submissions, "submission_id", submission.submission_id) is not None
        if own or self.loader.role == "student":
            self.state.submissions = upsert(self.state.submissions, submission, "submission_id")
        selected = self.state.selected
        if selected is None:
            return
        in_course = any(a.assignment_id == submission.assignment_id for a in selected.assignments)
        known = find(selected.submissions, "submission_id", submission.submission_id) is not None
        if in_course or known:
            selected.submissions = upsert(selected.submissions, submission, "submission_id")

    def _known_submission(self, submission_id: int) -> Optional[Submission]:
        existing = find(self.state.submissions, "submission_id", submission_id)
        if existing is None and self.state.selected:
            existing = find(self.state.selected.submissions, "submission_id", submission_id)
        return existing


class StudentActions(BaseActions):

    def join_course(self, course_id: Any, teacher_name: Any) -> Dict[str, Any]:
        """POST /enroll. Known backend rejections come back as EnrollmentError with friendlier text."""
        cid = positive_id(course_id, "Course ID")
        teacher = required_text(teacher_name, "Teacher name")
        try:
            result = self._write("POST", "/enroll", {"course_id": cid, "teacher_name": teacher})
        except HTTPError as e:
            detail = e.detail.lower()
            if "no classroom exists" in detail:
                raise EnrollmentError(NO_CLASSROOM_MESSAGE, e.status) from e
            if "teacher does not match" in detail:
                raise EnrollmentError(TEACHER_MISMATCH_MESSAGE, e.status) from e
            raise

        result = result if isinstance(result, dict) else {}
        course_data = result.get("course")
        course = self._model(Course, {"course_id": cid, **course_data}) if isinstance(course_data, dict) else None
        if course is None:
            self.loader.reload("courses")
        else:
            self.state.courses = upsert(self.state.courses, course, "course_id")
            self.loader.load_course_data([course.course_id])
        return result

    def create_submission(self, assignment_id: Any, content: Any) -> Optional[Submission]:
        """POST /submissions. Without a returned id the submission list is re-fetched."""
        aid = positive_id(assignment_id, "Assignment ID")
        text = required_text(content, "Submission content")
        result = self._write("POST", "/submissions", {"assignment_id": aid, "content": text})

        data = returned_entity(result, "submission", "submission_id")
        submission = self._model(Submission, {"assignment_id": aid, "content": text, **data}) if data else None
        if submission is None:
            self.loader.reload("submissions")
            return find_latest(self.state.submissions, aid)
        self._merge_submission(submission)
        return submission

    def update_submission(self, submission_id: Any, content: Any) -> Submission:
        """PUT /submissions/{id}; afterwards exactly one entry per id in each list."""
        sid = positive_id(submission_id, "Submission ID")
        text = required_text(content, "Submission content")
        result = self._write("PUT", f"/submissions/{sid}", {"content": text})

        existing = self._known_submission(sid)
        data = returned_entity(result, "submission", "submission_id")
        submission = None
        if data:
            base = existing.model_dump() if existing else {}
            submission = self._model(Submission, {**base, "content": text, **data})
        if submission is None:
            if existing is not None:
                submission = existing.model_copy(update={"content": text})
            else:
                submission = Submission(submission_id=sid, content=text)
        self._merge_submission(submission)
        return submission

    def update_profile(self, grade_level: Any = None, enrollment_year: Any = None) -> Dict[str, Any]:
        """PUT /student/profile, then merge the sent fields into the profile."""
        payload = student_profile_update(grade_level, enrollment_year)
        result = self._write("PUT", "/student/profile", payload)
        profile = result.get("student") if isinstance(result, dict) else None
        if isinstance(profile, dict):
            self.state.student_profile = profile
        else:
            self.state.student_profile = {**self.state.student_profile, **payload}
        return self.state.student_profile


def find_latest(submissions: List[Submission], assignment_id: int) -> Optional[Submission]:
    matching = [s for s in submissions if s.assignment_id == assignment_id]
    return matching[-1] if matching else None


class TeacherActions(BaseActions):

    # --- courses ----------------------------------------------------------

    def create_course(
        self,
        title: Any,
        description: Any = None,
        subject: Any = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> Optional[Course]:
        """POST /classrooms. A response carrying the whole list replaces it."""
        payload = {
            "title": required_text(title, "Course title"),
            "description": optional_text(description) or "",
            "subject": optional_text(subject) or "",
        }
        if start_date:
            payload["start_date"] = iso_due_date(start_date)
        if end_date:
            payload["end_date"] = iso_due_date(end_date)
        result = self._write("POST", "/classrooms", payload)

        if isinstance(result, list) or (
            isinstance(result, dict) and (isinstance(result.get("courses"), list) or isinstance(result.get("classrooms"), list))
        ):
            key = "classrooms" if isinstance(result, dict) and isinstance(result.get("classrooms"), list) else "courses"
            self._replace_courses(self.loader._parse_items(result, key, Course))
            return None

        data = returned_entity(result, "course", "course_id")
        course = self._model(Course, {**payload, **data}) if data else None
        if course is None:
            self.loader.reload("courses")
            return None
        self.state.courses = upsert(self.state.courses, course, "course_id")
        return course

    def _replace_courses(self, courses: List[Course]) -> None:
        before = {c.course_id for c in self.state.courses}
        self.state.courses = courses
        after = {c.course_id for c in courses}
        if before - after:
            self.loader.drop_course_data(before - after)
        added = [cid for cid in after if cid not in before]
        if added:
            self.loader.load_course_data(added)

    def update_course(
        self,
        course_id: Any,
        title: Any,
        description: Any = None,
        subject: Any = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> Course:
        cid = positive_id(course_id, "Course ID")
        payload: Dict[str, Any] = {"title": required_text(title, "Course title")}
        if description is not None:
            payload["description"] = optional_text(description)
        if subject is not None:
            payload["subject"] = optional_text(subject)
        if start_date:
            payload["start_date"] = iso_due_date(start_date)
        if end_date:
            payload["end_date"] = iso_due_date(end_date)
        result = self._write("PUT", f"/classrooms/{cid}", payload)

        data = returned_entity(result, "course", "course_id")
        existing = self.loader.find_course(cid)
        course = None
        if data:
            base = existing.model_dump() if existing else {}
            course = self._model(Course, {**base, "course_id": cid, **payload, **data})
        if course is None:
            course = existing.model_copy(update=payload) if existing else Course(course_id=cid, **payload)
        self.state.courses = upsert(self.state.courses, course, "course_id")
        if self._selected_course_id() == cid:
            self.state.selected.course = course
        return course

    def delete_course(self, course_id: Any) -> None:
        cid = positive_id(course_id, "Course ID")
        self._write("DELETE", f"/classrooms/{cid}")
        self.state.courses = remove(self.state.courses, "course_id", cid)
        self.loader.drop_course_data([cid])

    def remove_student(self, course_id: Any, student_id: Any) -> None:
        """DELETE /classrooms/{id}/students/{student_id}."""
        cid = positive_id(course_id, "Course ID")
        sid = positive_id(student_id, "Student ID")
        self._write("DELETE", f"/classrooms/{cid}/students/{sid}")
        if self._selected_course_id() == cid:
            self.state.selected.students = remove(self.state.selected.students, "student_id", sid)
        course = self.loader.find_course(cid)
        if course is not None and course.students > 0:
            self.state.courses = upsert(
                self.state.courses, course.model_copy(update={"students": course.students - 1}), "course_id"
            )

    # --- assignments ------------------------------------------------------

    def _merge_assignment(self, assignment: Assignment) -> None:
        self.state.assignments = upsert(self.state.assignments, assignment, "assignment_id")
        if any(a.assignment_id == assignment.assignment_id for a in self.state.upcoming):
            self.state.upcoming = upsert(self.state.upcoming, assignment, "assignment_id")
        if self._selected_course_id() is not None and self._selected_course_id() == assignment.course_id:
            self.state.selected.assignments = upsert(self.state.selected.assignments, assignment, "assignment_id")

    def create_assignment(
        self,
        course_id: Any,
        title: Any,
        description: Any = "",
        due_date: Any = None,
        max_points: Any = DEFAULT_MAX_POINTS,
    ) -> Optional[Assignment]:
        """POST /assignments. max_points defaults to 100."""
        payload = {
            "course_id": positive_id(course_id, "Course ID"),
            "title": required_text(title, "Assignment title"),
            "description": optional_text(description) or "",
            "due_date": iso_due_date(due_date),
            "max_points": positive_id(max_points if max_points not in (None, "") else DEFAULT_MAX_POINTS, "Max points"),
        }
        result = self._write("POST", "/assignments", payload)

        data = returned_entity(result, "assignment", "assignment_id")
        assignment = self._model(Assignment, {**payload, **data}) if data else None
        if assignment is None:
            self._refresh_course(payload["course_id"])
            return None
        self._merge_assignment(assignment)
        return assignment

    def update_assignment(
        self,
        assignment_id: Any,
        title: Any,
        description: Any = None,
        due_date: Any = None,
        max_points: Any = None,
        course_id: Any = None,
    ) -> Assignment:
        """PUT /assignments/{id}. course_id is sent when given or already known."""
        aid = positive_id(assignment_id, "Assignment ID")
        existing = self._known_assignment(aid)
        payload: Dict[str, Any] = {"title": required_text(title, "Assignment title")}
        if course_id not in (None, ""):
            payload["course_id"] = positive_id(course_id, "Course ID")
        elif existing is not None and existing.course_id is not None:
            payload["course_id"] = existing.course_id
        if description is not None:
            payload["description"] = optional_text(description)
        if due_date not in (None, ""):
            payload["due_date"] = iso_due_date(due_date)
        if max_points not in (None, ""):
            payload["max_points"] = positive_id(max_points, "Max points")
        result = self._write("PUT", f"/assignments/{aid}", payload)

        data = returned_entity(result, "assignment", "assignment_id")
        assignment = None
        if data:
            base = existing.model_dump() if existing else {}
            assignment = self._model(Assignment, {**base, **payload, **data})
        if assignment is None:
            assignment = existing.model_copy(update=payload) if existing else Assignment(assignment_id=aid, **payload)
        self._merge_assignment(assignment)
        return assignment

    def delete_assignment(self, assignment_id: Any) -> None:
        aid = positive_id(assignment_id, "Assignment ID")
        self._write("DELETE", f"/assignments/{aid}")
        self.state.assignments = remove(self.state.assignments, "assignment_id", aid)
        self.state.upcoming = remove(self.state.upcoming, "assignment_id", aid)
        selected = self.state.selected
        if selected is not None:
            selected.assignments = remove(selected.assignments, "assignment_id", aid)
            selected.submissions = [s for s in selected.submissions if s.assignment_id != aid]
            selected.stats.pop(aid, None)

    def _known_assignment(self, assignment_id: int) -> Optional[Assignment]:
        lists = [self.state.assignments, self.state.upcoming]
        if self.state.selected:
            lists.append(self.state.selected.assignments)
        for items in lists:
            found = find(items, "assignment_id", assignment_id)
            if found is not None:
                return found
        return None

    # --- announcements ----------------------------------------------------

    def _merge_announcement(self, announcement: Announcement, front: bool = False) -> None:
        self.state.announcements = order_announcements(
            upsert(self.state.announcements, announcement, "announcement_id", front=front)
        )
        selected = self.state.selected
        if selected is not None and selected.course.course_id == announcement.course_id:
            selected.announcements = order_announcements(
                upsert(selected.announcements, announcement, "announcement_id", front=front)
            )

    def create_announcement(self, course_id: Any, title: Any, content: Any, is_pinned: bool = False) -> Optional[Announcement]:
        """POST /announcements. New entries go first, pinned ones stay on top."""
        payload = {
            "course_id": positive_id(course_id, "Course ID"),
            "title": required_text(title, "Announcement title"),
            "content": required_text(content, "Announcement content"),
            "is_pinned": bool(is_pinned),
        }
        result = self._write("POST", "/announcements", payload)

        data = returned_entity(result, "announcement", "announcement_id")
        announcement = None
        if data:
            fallback = {"created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")}
            announcement = self._model(Announcement, {**fallback, **payload, **data})
        if announcement is None:
            self._refresh_course(payload["course_id"])
            return None
        self._merge_announcement(announcement, front=True)
        return announcement

    def update_announcement(
        self,
        announcement_id: Any,
        title: Any,
        content: Any,
        is_pinned: Optional[bool] = None,
    ) -> Announcement:
        anid = positive_id(announcement_id, "Announcement ID")
        payload: Dict[str, Any] = {
            "title": required_text(title, "Announcement title"),
            "content": required_text(content, "Announcement content"),
        }
        if is_pinned is not None:
            payload["is_pinned"] = bool(is_pinned)
        result = self._write("PUT", f"/announcements/{anid}", payload)

        existing = find(self.state.announcements, "announcement_id", anid)
        if existing is None and self.state.selected:
            existing = find(self.state.selected.announcements, "announcement_id", anid)
        data = returned_entity(result, "announcement", "announcement_id")
        announcement = None
        if data:
            base = existing.model_dump() if existing else {}
            announcement = self._model(Announcement, {**base, **data})
        if announcement is None:
            announcement = existing.model_copy(update=payload) if existing else Announcement(announcement_id=anid, **payload)
        self._merge_announcement(announcement)
        return announcement

    def delete_announcement(self, announcement_id: Any) -> None:
        anid = positive_id(announcement_id, "Announcement ID")
        self._write("DELETE", f"/announcements/{anid}")
        self.state.announcements = remove(self.state.announcements, "announcement_id", anid)
        if self.state.selected:
            self.state.selected.announcements = remove(self.state.selected.announcements, "announcement_id", anid)

    # --- materials --------------------------------------------------------

    def _merge_material(self, material: Material) -> None:
        self.state.materials = upsert(self.state.materials, material, "material_id")
        selected = self.state.selected
        if selected is not None and selected.course.course_id == material.course_id:
            selected.materials = upsert(selected.materials, material, "material_id")

    def create_material(
        self,
        course_id: Any,
        title: Any,
        file_path: Any,
        description: Any = None,
        type: Any = DEFAULT_MATERIAL_TYPE,
    ) -> Optional[Material]:
        payload = {
            "course_id": positive_id(course_id, "Course ID"),
            "title": required_text(title, "Material title"),
            "file_path": required_text(file_path, "File path"),
            "description": optional_text(description) or "",
            "type": optional_text(type) or DEFAULT_MATERIAL_TYPE,
        }
        result = self._write("POST", "/materials", payload)

        data = returned_entity(result, "material", "material_id")
        material = self._model(Material, {**payload, **data}) if data else None
        if material is None:
            self._refresh_course(payload["course_id"])
            return None
        self._merge_material(material)
        return material

    def update_material(
        self,
        material_id: Any,
        title: Any,
        file_path: Any,
        description: Any = None,
        type: Any = None,
    ) -> Material:
        mid = positive_id(material_id, "Material ID")
        payload: Dict[str, Any] = {
            "title": required_text(title, "Material title"),
            "file_path": required_text(file_path, "File path"),
        }
        if description is not None:
            payload["description"] = optional_text(description)
        if type:
            payload["type"] = optional_text(type)
        result = self._write("PUT", f"/materials/{mid}", payload)

        existing = find(self.state.materials, "material_id", mid)
        if existing is None and self.state.selected:
            existing = find(self.state.selected.materials, "material_id", mid)
        data = returned_entity(result, "material", "material_id")
        material = None
        if data:
            base = existing.model_dump() if existing else {}
            material = self._model(Material, {**base, **data})
        if material is None:
            material = existing.model_copy(update=payload) if existing else Material(material_id=mid, **payload)
        self._merge_material(material)
        return material

    def delete_material(self, material_id: Any) -> None:
        mid = positive_id(material_id, "Material ID")
        self._write("DELETE", f"/materials/{mid}")
        self.state.materials = remove(self.state.materials, "material_id", mid)
        if self.state.selected:
            self.state.selected.materials = remove(self.state.selected.materials, "material_id", mid)

    # --- grading ----------------------------------------------------------

    def grade_submission(self, submission_id: Any, score: Any, feedback: Any = None) -> Submission:
        """POST /submissions/{id}/grade with {score, feedback}."""
        sid = positive_id(submission_id, "Submission ID")
        value = numeric_score(score)
        existing = self._known_submission(sid)
        if existing is not None and existing.assignment_id is not None:
            assignment = self._known_assignment(existing.assignment_id)
            if assignment is not None and assignment.max_points is not None and value > assignment.max_points:
                raise ValidationError(f"Score cannot exceed {assignment.max_points} points")
        note = optional_text(feedback) or None
        result = self._write("POST", f"/submissions/{sid}/grade", {"score": value, "feedback": note})

        data = returned_entity(result, "submission", "submission_id")
        submission = None
        if data:
            base = existing.model_dump() if existing else {}
            submission = self._model(Submission, {**base, **data})
        if submission is None:
            update = {"score": value, "feedback": note}
            submission = existing.model_copy(update=update) if existing else Submission(submission_id=sid, **update)
        self._merge_submission(submission)
        if submission.assignment_id is not None:
            self._refresh_stats(submission.assignment_id)
        return submission

    def _refresh_stats(self, assignment_id: int) -> None:
        selected = self.state.selected
        if selected is None:
            return
        payload = self.loader.fan_out([f"/assignments/{assignment_id}/statistics"])[0]
        if isinstance(payload, dict) and payload:
            stats = self._model(AssignmentStats, {"assignment_id": assignment_id, **payload})
            if stats is not None:
                selected.stats[assignment_id] = stats

    def _refresh_course(self, course_id: int) -> None:
        """Re-fetch one course's lists when a write response did not describe the new entity."""
        self.loader.load_course_data([course_id])
        if self._selected_course_id() == course_id:
            self.loader.reload("selected")
