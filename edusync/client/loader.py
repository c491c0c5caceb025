"""
Dashboard data loader: fetches the resource graph for a student or teacher
dashboard and keeps the latest snapshot in a DashboardState.

Course-dependent requests start only after the course list is known. Per-course
requests run concurrently on a thread pool and the merged lists are assigned
only once every request has settled; one course failing leaves the others intact.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .accounts import ROLES, fetch_profile
from .api_client import ApiClient
from .errors import AuthenticationError, EduSyncError, HTTPError, InvalidResponseError
from .formatters import parse_timestamp
from .schemas import (
    Announcement,
    Assignment,
    AssignmentStats,
    Course,
    CourseDetail,
    DashboardState,
    Material,
    Student,
    Submission,
    UserStats,
)
from .session import AUTH_FAILURE_STATUSES, Session

T = TypeVar("T", bound=BaseModel)

RELOAD_SCOPES = (
    "all",
    "profile",
    "summary",
    "courses",
    "course_data",
    "submissions",
    "selected",
    "upcoming",
    "stats",
)

DEFAULT_MAX_WORKERS = 8


def as_list(payload: Any, key: Optional[str] = None) -> List[Any]:
    """Unwrap a list payload, or a {key: [...]} / {data: [...]} wrapper. Anything else is empty."""
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for k in (key, "data", "items"):
            if k and isinstance(payload.get(k), list):
                return payload[k]
    return []


def order_announcements(items: Iterable[Announcement]) -> List[Announcement]:
    """Pinned first, then newest first."""
    def sort_key(a: Announcement):
        ts = parse_timestamp(a.created_at)
        return (not a.is_pinned, -(ts.timestamp() if ts else float("-inf")))
    return sorted(items, key=sort_key)


class DashboardLoader:
    """Loads and refreshes one role's dashboard for the given session."""

    def __init__(
        self,
        session: Session,
        client: Optional[ApiClient] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.session = session
        self.client = client or session.client
        self.state = DashboardState()
        self.max_workers = max_workers
        self.logger = logging.getLogger(self.__class__.__name__)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="edusync-fetch")
        self._inflight: Dict[Hashable, Future] = {}
        self._inflight_lock = threading.Lock()
        self._loaded_token: Optional[str] = None

    @property
    def role(self) -> Optional[str]:
        return self.state.role or self.session.role

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # --- requests ---------------------------------------------------------

    def token(self) -> str:
        """Valid token for the next call; expired tokens log the session out."""
        return self.session.require_token()

    def _auth_failed(self, error: HTTPError) -> AuthenticationError:
        self.session.handle_auth_failure(error)
        return AuthenticationError("Session is no longer valid, please log in again")

    def call(self, method: str, path: str, data: Any = None) -> Any:
        """One authenticated request. 401/403 log the session out."""
        token = self.token()
        try:
            return self.client.request(path, method, token, data)
        except HTTPError as e:
            if e.status in AUTH_FAILURE_STATUSES:
                raise self._auth_failed(e) from e
            raise

    def _get(self, path: str) -> Any:
        return self.call("GET", path)

    def fan_out(self, paths: Sequence[str]) -> List[Any]:
        """GET every path concurrently and wait for all. A failed path yields None."""
        if not paths:
            return []
        token = self.token()
        futures = [self._executor.submit(self.client.get, path, token) for path in paths]
        results: List[Any] = []
        auth_error: Optional[HTTPError] = None
        for path, future in zip(paths, futures):
            try:
                results.append(future.result())
            except HTTPError as e:
                if e.status in AUTH_FAILURE_STATUSES:
                    auth_error = e
                else:
                    self.logger.error(f"Failed to fetch {path}: {e}")
                results.append(None)
            except EduSyncError as e:
                self.logger.error(f"Failed to fetch {path}: {e}")
                results.append(None)
        if auth_error is not None:
            raise self._auth_failed(auth_error) from auth_error
        return results

    def _single_flight(self, key: Hashable, fn: Callable[[], Any]) -> Any:
        """Run fn once per key at a time; concurrent callers with the same key share the result."""
        with self._inflight_lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
        if not owner:
            self.logger.debug(f"Joining in-flight load {key}")
            return future.result()
        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _parse_items(
        self,
        payload: Any,
        key: str,
        model: Type[T],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> List[T]:
        """Validate list entries into model, dropping empty or malformed ones."""
        items: List[T] = []
        for entry in as_list(payload, key):
            if not entry:
                continue
            if defaults and isinstance(entry, dict):
                entry = {**defaults, **{k: v for k, v in entry.items() if v is not None}}
            try:
                items.append(model.model_validate(entry))
            except SchemaError as e:
                self.logger.warning(f"Skipping malformed {model.__name__}: {e.errors()[0]['msg']}")
        return items

    # --- public operations ------------------------------------------------

    def load(self, role: Optional[str] = None) -> DashboardState:
        """Full dashboard load for role (defaults to the session user's role)."""
        role = role or self.session.role
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        return self._single_flight(("all", role), lambda: self._load(role))

    def sync(self) -> Optional[DashboardState]:
        """Load again only when the session token changed since the last load."""
        if not self.session.token:
            self.state = DashboardState()
            self._loaded_token = None
            return None
        if self.session.token == self._loaded_token:
            return self.state
        return self.load()

    def reload(self, scope: str = "all") -> DashboardState:
        """Re-fetch just the named part of the dashboard."""
        if scope not in RELOAD_SCOPES:
            raise ValueError(f"Unknown reload scope: {scope}")
        if scope == "all":
            return self.load()
        selected_id = self.state.selected.course.course_id if self.state.selected else None
        return self._single_flight((scope, self.role, selected_id), lambda: self._reload(scope))

    def select_course(self, course_id: int) -> CourseDetail:
        """Load detail, assignments, materials, announcements and submissions for one course."""
        course = self.find_course(course_id)
        if course is None:
            course = Course(course_id=course_id)
        return self._single_flight(("selected", course_id), lambda: self._load_course_detail(course))

    def clear_selection(self) -> None:
        self.state.selected = None

    def find_course(self, course_id: int) -> Optional[Course]:
        for course in self.state.courses:
            if course.course_id == course_id:
                return course
        return None

    # --- steps ------------------------------------------------------------

    def _load(self, role: str) -> DashboardState:
        token = self.token()
        if self.state.role != role or self._loaded_token != token:
            self.state = DashboardState(role=role)
        self.state.errors = {}
        self.logger.info(f"Loading {role} dashboard")

        self._step("profile", self._load_profile)
        if role == "student":
            self._step("summary", self._load_summary)
        if self._step("courses", self._load_courses):
            self._step("course_data", self._load_course_data)
        if role == "student":
            self._step("submissions", self._load_submissions)
        else:
            self._step("upcoming", self._load_upcoming)
            self._step("stats", self._load_stats)

        self._loaded_token = token
        self.logger.info(
            f"Loaded {role} dashboard: {len(self.state.courses)} course(s), "
            f"{len(self.state.assignments)} assignment(s), {len(self.state.announcements)} announcement(s)"
        )
        return self.state

    def _step(self, name: str, fn: Callable[[], Any]) -> bool:
        """Run one load step; non-auth failures are logged and recorded, not raised."""
        try:
            fn()
            return True
        except AuthenticationError:
            raise
        except EduSyncError as e:
            self.logger.error(f"Failed to load {name}: {e}")
            self.state.errors[name] = str(e)
            return False

    def _reload(self, scope: str) -> DashboardState:
        self.token()
        if scope == "profile":
            self._load_profile()
        elif scope == "summary":
            self._load_summary()
        elif scope == "courses":
            self._refresh_courses()
        elif scope == "course_data":
            self._load_course_data()
        elif scope == "submissions":
            if self.role == "student":
                self._load_submissions()
            elif self.state.selected:
                self.state.selected.submissions = self._fetch_submissions(self.state.selected.assignments)
        elif scope == "selected":
            if self.state.selected:
                self._load_course_detail(self.state.selected.course)
        elif scope == "upcoming":
            self._load_upcoming()
        elif scope == "stats":
            self._load_stats()
        return self.state

    def _load_profile(self) -> None:
        try:
            user, student = fetch_profile(self.client, self.token())
        except InvalidResponseError as e:
            self.logger.error(f"Profile without user, logging out: {e}")
            self.session.logout()
            raise AuthenticationError("Could not load your profile, please log in again") from e
        except HTTPError as e:
            if e.status in AUTH_FAILURE_STATUSES:
                raise self._auth_failed(e) from e
            raise
        self.state.user = user
        self.state.student_profile = student

    def _load_summary(self) -> None:
        data = self._get("/student/dashboard")
        self.state.summary = data if isinstance(data, dict) else {"data": data}

    def _fetch_courses(self) -> List[Course]:
        if self.role == "student":
            data = self._get("/student/enrollments")
            return self._parse_items(data, "courses", Course)
        data = self._get("/teacher/classrooms")
        if isinstance(data, dict) and not isinstance(data.get("courses"), list):
            return self._parse_items(data, "classrooms", Course)
        return self._parse_items(data, "courses", Course)

    def _load_courses(self) -> None:
        self.state.courses = self._fetch_courses()

    def _refresh_courses(self) -> None:
        """Re-fetch the course list; fetch data only for added courses, drop data of removed ones."""
        before = {c.course_id for c in self.state.courses}
        self._load_courses()
        after = {c.course_id for c in self.state.courses}
        removed = before - after
        added = [c.course_id for c in self.state.courses if c.course_id not in before]
        if removed:
            self.drop_course_data(removed)
        if added:
            self.load_course_data(added)

    def _load_course_data(self) -> None:
        self.load_course_data(None)

    def load_course_data(self, course_ids: Optional[Sequence[int]] = None) -> None:
        """Per-course assignments, announcements and materials, fetched concurrently.

        course_ids=None refreshes every loaded course and replaces the lists;
        otherwise only those courses' entries are replaced.
        """
        targets = [c.course_id for c in self.state.courses] if course_ids is None else list(course_ids)
        if not targets:
            if course_ids is None:
                self.state.assignments = []
                self.state.announcements = []
                self.state.materials = []
            return

        paths: List[str] = []
        for cid in targets:
            paths.extend([
                f"/classrooms/{cid}/assignments",
                f"/classrooms/{cid}/announcements",
                f"/classrooms/{cid}/materials",
            ])
        results = self.fan_out(paths)

        assignments: List[Assignment] = []
        announcements: List[Announcement] = []
        materials: List[Material] = []
        for i, cid in enumerate(targets):
            a_payload, an_payload, m_payload = results[3 * i:3 * i + 3]
            defaults = {"course_id": cid}
            assignments.extend(self._parse_items(a_payload, "assignments", Assignment, defaults))
            announcements.extend(self._parse_items(an_payload, "announcements", Announcement, defaults))
            materials.extend(self._parse_items(m_payload, "materials", Material, defaults))

        if course_ids is not None:
            refreshed = set(targets)
            assignments = [a for a in self.state.assignments if a.course_id not in refreshed] + assignments
            announcements = [a for a in self.state.announcements if a.course_id not in refreshed] + announcements
            materials = [m for m in self.state.materials if m.course_id not in refreshed] + materials

        self.state.assignments = assignments
        self.state.announcements = order_announcements(announcements)
        self.state.materials = materials

    def drop_course_data(self, course_ids: Iterable[int]) -> None:
        """Forget loaded entries that belong to the given courses."""
        dropped = set(course_ids)
        self.state.assignments = [a for a in self.state.assignments if a.course_id not in dropped]
        self.state.announcements = [a for a in self.state.announcements if a.course_id not in dropped]
        self.state.materials = [m for m in self.state.materials if m.course_id not in dropped]
        if self.state.selected and self.state.selected.course.course_id in dropped:
            self.state.selected = None

    def _load_submissions(self) -> None:
        data = self._get("/student/submissions")
        self.state.submissions = self._parse_items(data, "submissions", Submission)

    def _load_upcoming(self) -> None:
        try:
            data = self._get("/teacher/assignments/upcoming")
        except AuthenticationError:
            raise
        except EduSyncError as e:
            self.logger.error(f"Error fetching upcoming assignments: {e}")
            data = []
        self.state.upcoming = self._parse_items(data, "assignments", Assignment)

    def _load_stats(self) -> None:
        data = self._get("/stats")
        data = data if isinstance(data, dict) else {}
        self.state.stats = UserStats(
            total_students=data.get("total_students") or 0,
            total_assignments=data.get("total_assignments") or 0,
        )

    def _fetch_submissions(self, assignments: Sequence[Assignment]) -> List[Submission]:
        """Submissions of every given assignment, aggregated into one list."""
        paths = [f"/assignments/{a.assignment_id}/submissions" for a in assignments]
        submissions: List[Submission] = []
        for assignment, payload in zip(assignments, self.fan_out(paths)):
            submissions.extend(self._parse_items(
                payload, "submissions", Submission, {"assignment_id": assignment.assignment_id}
            ))
        return submissions

    def _load_course_detail(self, course: Course) -> CourseDetail:
        cid = course.course_id
        detail, a_payload, m_payload, an_payload = self.fan_out([
            f"/classrooms/{cid}",
            f"/classrooms/{cid}/assignments",
            f"/classrooms/{cid}/materials",
            f"/classrooms/{cid}/announcements",
        ])
        detail = detail if isinstance(detail, dict) else {}
        defaults = {"course_id": cid}

        # Teacher course detail embeds assignments/materials; use them if the list call failed
        assignments = self._parse_items(
            a_payload if a_payload is not None else detail.get("assignments"),
            "assignments", Assignment, defaults,
        )
        materials = self._parse_items(
            m_payload if m_payload is not None else detail.get("materials"),
            "materials", Material, defaults,
        )
        announcements = order_announcements(
            self._parse_items(an_payload, "announcements", Announcement, defaults)
        )
        students = self._parse_items(detail.get("students"), "students", Student)

        stats: Dict[int, AssignmentStats] = {}
        if self.role == "teacher":
            ids = [a.assignment_id for a in assignments]
            paths = [f"/assignments/{aid}/submissions" for aid in ids]
            paths += [f"/assignments/{aid}/statistics" for aid in ids]
            results = self.fan_out(paths)
            submissions: List[Submission] = []
            for aid, payload in zip(ids, results[:len(ids)]):
                submissions.extend(self._parse_items(payload, "submissions", Submission, {"assignment_id": aid}))
            for aid, payload in zip(ids, results[len(ids):]):
                if isinstance(payload, dict) and payload:
                    try:
                        stats[aid] = AssignmentStats.model_validate({"assignment_id": aid, **payload})
                    except SchemaError as e:
                        self.logger.warning(f"Skipping statistics for assignment {aid}: {e.errors()[0]['msg']}")
        else:
            submissions = self._fetch_submissions(assignments)

        if self.find_course(cid) is None and detail:
            try:
                course = Course.model_validate({"course_id": cid, **{k: v for k, v in detail.items() if not isinstance(v, list)}})
            except SchemaError as e:
                self.logger.debug(f"Course detail did not describe course {cid}: {e}")

        selected = CourseDetail(
            course=course,
            details=detail,
            assignments=assignments,
            materials=materials,
            announcements=announcements,
            submissions=submissions,
            students=students,
            stats=stats,
        )
        self.state.selected = selected
        self.logger.info(
            f"Loaded course {cid}: {len(assignments)} assignment(s), {len(submissions)} submission(s)"
        )
        return selected
