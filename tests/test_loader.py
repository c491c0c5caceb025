import threading
import time

import pytest

from edusync.client.errors import AuthenticationError
from edusync.client.loader import DashboardLoader, as_list, order_announcements
from edusync.client.schemas import Announcement

from conftest import make_token, signed_in

PROFILE = {"user": {"id": 1, "name": "Sam", "email": "sam@school.test", "role": "student"},
           "student": {"grade_level": "10", "enrollment_year": 2024}}


def student_routes(http, course_ids=(1, 2, 3)):
    http.add("GET", "/profile", (200, PROFILE))
    http.add("GET", "/student/dashboard", (200, {"enrolled_courses": len(course_ids)}))
    http.add("GET", "/student/enrollments", (200, [
        {"course_id": cid, "title": f"Course {cid}", "teacher_name": "Ms. T"} for cid in course_ids
    ]))
    for cid in course_ids:
        http.add("GET", f"/classrooms/{cid}/assignments", (200, [
            {"assignment_id": cid * 10, "course_id": cid, "title": f"Essay {cid}", "due_date": "2099-01-01T00:00:00Z"}
        ]))
        http.add("GET", f"/classrooms/{cid}/announcements", (200, {"announcements": [
            {"announcement_id": cid * 100, "title": f"News {cid}", "content": "hello",
             "created_at": f"2025-05-0{cid}T10:00:00Z"}
        ]}))
        http.add("GET", f"/classrooms/{cid}/materials", (200, []))
    http.add("GET", "/student/submissions", (200, [{"submission_id": 5, "assignment_id": 10, "content": "draft"}]))


def test_student_load_aggregates_every_course(student_loader, http):
    student_routes(http)
    state = student_loader.load()

    assert [c.course_id for c in state.courses] == [1, 2, 3]
    assert sorted(a.assignment_id for a in state.assignments) == [10, 20, 30]
    assert [a.announcement_id for a in state.announcements] == [300, 200, 100]
    assert state.submissions[0].content == "draft"
    assert state.summary == {"enrolled_courses": 3}
    assert state.student_profile["grade_level"] == "10"
    assert state.errors == {}


def test_per_course_requests_run_concurrently(student_loader, http):
    student_routes(http)
    barrier = threading.Barrier(3, timeout=5)

    def assignments(call):
        barrier.wait()
        cid = int(call.path.split("/")[2])
        return 200, [{"assignment_id": cid * 10, "title": "x"}]

    for cid in (1, 2, 3):
        http.add("GET", f"/classrooms/{cid}/assignments", assignments)

    state = student_loader.load()
    assert sorted(a.assignment_id for a in state.assignments) == [10, 20, 30]
    # course_id filled from the course the list was fetched for
    assert {a.course_id for a in state.assignments} == {1, 2, 3}


def test_course_data_waits_for_course_list(student_loader, http):
    student_routes(http)
    student_loader.load()
    paths = http.paths("GET")
    enrollments = paths.index("/student/enrollments")
    assert all(paths.index(p) > enrollments for p in paths if p.startswith("/classrooms/"))


def test_one_failing_course_does_not_hide_the_others(student_loader, http):
    student_routes(http)
    http.add("GET", "/classrooms/2/assignments", (500, {"message": "db down"}))

    state = student_loader.load()

    assert sorted(a.assignment_id for a in state.assignments) == [10, 30]
    assert len(state.announcements) == 3


def test_failed_course_list_skips_course_data(student_loader, http):
    student_routes(http)
    http.add("GET", "/student/enrollments", (500, {"message": "nope"}))

    state = student_loader.load()

    assert state.courses == []
    assert "courses" in state.errors
    assert not any(p.startswith("/classrooms/") for p in http.paths())
    assert state.submissions  # independent step still ran


def test_unauthorized_response_logs_out(student_loader, http):
    student_routes(http)
    http.add("GET", "/student/enrollments", (401, {"message": "Token expired"}))

    with pytest.raises(AuthenticationError):
        student_loader.load()
    assert student_loader.session.token is None


def test_expired_token_makes_no_request(client, http):
    session = signed_in(client, "student", token=make_token(time.time() - 10))
    loader = DashboardLoader(session)
    try:
        with pytest.raises(AuthenticationError):
            loader.load("student")
    finally:
        loader.close()
    assert http.calls == []


def test_profile_without_user_logs_out(student_loader, http):
    student_routes(http)
    http.add("GET", "/profile", (200, {"student": {}}))
    with pytest.raises(AuthenticationError):
        student_loader.load()
    assert not student_loader.session.is_authenticated


def test_concurrent_loads_share_one_fetch(student_loader, http):
    student_routes(http)
    release = threading.Event()

    def slow_profile(call):
        release.wait(5)
        return 200, PROFILE

    http.add("GET", "/profile", slow_profile)
    results = []
    threads = [threading.Thread(target=lambda: results.append(student_loader.load())) for _ in range(2)]
    for t in threads:
        t.start()
    time.sleep(0.2)
    release.set()
    for t in threads:
        t.join(5)

    assert len(results) == 2
    assert http.paths("GET").count("/student/enrollments") == 1


def test_sync_reloads_only_when_token_changes(student_loader, http):
    student_routes(http)
    student_loader.load()
    before = len(http.calls)
    student_loader.sync()
    assert len(http.calls) == before

    student_loader.session.token = make_token(time.time() + 3600)
    student_loader.sync()
    assert len(http.calls) > before


def test_reload_courses_fetches_only_new_courses(student_loader, http):
    student_routes(http, (1, 2))
    student_loader.load()
    student_routes(http, (2, 3))
    http.calls.clear()

    state = student_loader.reload("courses")

    assert [c.course_id for c in state.courses] == [2, 3]
    assert sorted(a.assignment_id for a in state.assignments) == [20, 30]
    assert not any(p.startswith("/classrooms/2/") for p in http.paths())


def test_reload_rejects_unknown_scope(student_loader):
    with pytest.raises(ValueError):
        student_loader.reload("everything")


def test_teacher_load(teacher_loader, http):
    http.add("GET", "/profile", (200, {"user": {"id": 2, "name": "T", "role": "teacher"}}))
    http.add("GET", "/teacher/classrooms", (200, {"courses": [
        {"course_id": 4, "title": "", "subject_area": "Math", "students": "n/a"},
    ]}))
    http.add("GET", "/classrooms/4/assignments", (200, []))
    http.add("GET", "/classrooms/4/announcements", (200, []))
    http.add("GET", "/classrooms/4/materials", (200, []))
    http.add("GET", "/teacher/assignments/upcoming", (500, {"message": "oops"}))
    http.add("GET", "/stats", (200, {"total_students": 12, "total_assignments": 3}))

    state = teacher_loader.load()

    course = state.courses[0]
    assert (course.title, course.subject, course.students, course.assignments) == ("Untitled Course", "Math", 0, 0)
    assert state.upcoming == []
    assert state.stats.total_students == 12
    assert "/student/submissions" not in http.paths()


def test_select_course_for_teacher_loads_submissions_and_stats(teacher_loader, http):
    http.add("GET", "/classrooms/4", (200, {"course_id": 4, "title": "Algebra", "students": [
        {"student_id": 9, "name": "Kim"}]}))
    http.add("GET", "/classrooms/4/assignments", (200, [{"assignment_id": 41, "title": "Quiz"}]))
    http.add("GET", "/classrooms/4/materials", (200, []))
    http.add("GET", "/classrooms/4/announcements", (200, [
        {"announcement_id": 1, "title": "old", "created_at": "2025-01-01T00:00:00Z"},
        {"announcement_id": 2, "title": "pinned", "is_pinned": True, "created_at": "2024-01-01T00:00:00Z"},
    ]))
    http.add("GET", "/assignments/41/submissions", (200, [{"submission_id": 3, "grade": 8, "score": None}]))
    http.add("GET", "/assignments/41/statistics", (200, {"average_score": 8.0, "submission_count": 1}))

    detail = teacher_loader.select_course(4)

    assert detail.course.title == "Algebra"
    assert [a.announcement_id for a in detail.announcements] == [2, 1]
    assert detail.submissions[0].assignment_id == 41
    assert detail.submissions[0].score == 8
    assert detail.stats[41].average_score == 8.0
    assert detail.students[0].name == "Kim"
    assert teacher_loader.state.selected is detail


def test_as_list_unwraps():
    assert as_list([1, 2]) == [1, 2]
    assert as_list({"assignments": [1]}, "assignments") == [1]
    assert as_list({"data": [2]}, "assignments") == [2]
    assert as_list({"message": "none"}, "assignments") == []
    assert as_list(None) == []


def test_order_announcements_pinned_then_newest():
    items = [
        Announcement(announcement_id=1, created_at="2025-01-01T00:00:00Z"),
        Announcement(announcement_id=2, created_at="2025-03-01T00:00:00Z"),
        Announcement(announcement_id=3, created_at="2024-01-01T00:00:00Z", is_pinned=True),
        Announcement(announcement_id=4),
    ]
    assert [a.announcement_id for a in order_announcements(items)] == [3, 2, 1, 4]
