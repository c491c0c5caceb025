"""
Student dashboard: enrolled courses, assignments with due times, submissions,
announcements and profile.
"""
import tkinter as tk
from typing import Any, Dict, Optional

from edusync.client.formatters import format_date
from edusync.client.mutations import StudentActions
from edusync.client.schemas import Submission
from edusync.views.common import (
    RoleDashboard,
    announcement_title,
    button_row,
    due_columns,
    fill_tree,
    make_tree,
    selected_id,
)
from edusync.views.forms import ask_form


def score_text(submission: Optional[Submission]) -> str:
    if submission is None:
        return "Not submitted"
    if submission.score is None:
        return "Submitted"
    return f"Score: {submission.score}"


class StudentDashboard(RoleDashboard):
    name = "Student Dashboard"
    role = "student"

    def __init__(self, app, config: Dict[str, Any]):
        super().__init__(app, config)
        self.actions = StudentActions(self.loader)

    def build_tabs(self, notebook) -> None:
        overview = self.add_tab("Overview")
        self.summary_label = self.create_label(overview, text="", justify=tk.LEFT)
        self.summary_label.pack(fill=tk.X, pady=4)
        self.create_label(overview, text="Assignments", font_size="heading", bold=True).pack(fill=tk.X)
        self.assignments_tree = make_tree(overview, ("Assignment", "Course", "Due", "When", "Overdue", "Status"))
        button_row(overview, [("Submit / edit work", self._submit_from_overview)])

        courses = self.add_tab("Courses")
        button_row(courses, [("Join course", self._join_course)])
        self.courses_tree = make_tree(courses, ("Course", "Subject", "Teacher"), height=6)
        self.courses_tree.bind("<<TreeviewSelect>>", lambda e: self._select_course())
        self.course_title = self.create_label(courses, text="Select a course", font_size="heading", bold=True)
        self.course_title.pack(fill=tk.X, pady=(8, 0))
        self.course_assignments = make_tree(courses, ("Assignment", "Due", "When", "Overdue", "Status"), height=5)
        button_row(courses, [("Submit / edit work", self._submit_from_course)])
        self.course_materials = make_tree(courses, ("Material", "Type", "File"), height=4)
        self.course_announcements = make_tree(courses, ("Announcement", "Posted", "Content"), height=4)

        announcements = self.add_tab("Announcements")
        self.announcements_tree = make_tree(announcements, ("Announcement", "Course", "Posted", "Content"), height=14)

        profile = self.add_tab("Profile")
        self.profile_label = self.create_label(profile, text="", justify=tk.LEFT)
        self.profile_label.pack(fill=tk.X, pady=4)
        button_row(profile, [("Edit profile", self._edit_profile)])

    # --- rendering --------------------------------------------------------

    def _course_title(self, course_id: Optional[int]) -> str:
        course = self.loader.find_course(course_id) if course_id is not None else None
        return course.title if course else ""

    def _submission_for(self, assignment_id: int) -> Optional[Submission]:
        for submission in reversed(self.state.submissions):
            if submission.assignment_id == assignment_id:
                return submission
        return None

    def render(self) -> None:
        state = self.state
        summary = ", ".join(f"{key.replace('_', ' ')}: {value}" for key, value in state.summary.items()
                            if not isinstance(value, (list, dict)))
        self.summary_label.configure(text=summary or f"{len(state.courses)} course(s) enrolled")

        fill_tree(
            self.assignments_tree,
            [[a.title, self._course_title(a.course_id), *due_columns(a), score_text(self._submission_for(a.assignment_id))]
             for a in state.assignments],
            [a.assignment_id for a in state.assignments],
        )
        fill_tree(
            self.courses_tree,
            [[c.title, c.subject, c.teacher_name] for c in state.courses],
            [c.course_id for c in state.courses],
        )
        fill_tree(
            self.announcements_tree,
            [[announcement_title(a), self._course_title(a.course_id), format_date(a.created_at), a.content]
             for a in state.announcements],
            [a.announcement_id for a in state.announcements],
        )
        profile = {**({"name": state.user.name, "email": state.user.email} if state.user else {}), **state.student_profile}
        self.profile_label.configure(
            text="\n".join(f"{key.replace('_', ' ').title()}: {value}" for key, value in profile.items() if value is not None)
        )
        self._render_selected()

    def _render_selected(self) -> None:
        selected = self.state.selected
        if selected is None:
            self.course_title.configure(text="Select a course")
            for tree in (self.course_assignments, self.course_materials, self.course_announcements):
                fill_tree(tree, [])
            return
        course = selected.course
        teacher = f" with {course.teacher_name}" if course.teacher_name else ""
        self.course_title.configure(text=f"{course.title}{teacher}")
        by_assignment = {s.assignment_id: s for s in selected.submissions}
        fill_tree(
            self.course_assignments,
            [[a.title, *due_columns(a), score_text(by_assignment.get(a.assignment_id))] for a in selected.assignments],
            [a.assignment_id for a in selected.assignments],
        )
        fill_tree(
            self.course_materials,
            [[m.title, m.type, m.file_path] for m in selected.materials],
            [m.material_id for m in selected.materials],
        )
        fill_tree(
            self.course_announcements,
            [[announcement_title(a), format_date(a.created_at), a.content] for a in selected.announcements],
            [a.announcement_id for a in selected.announcements],
        )

    # --- actions ----------------------------------------------------------

    def _select_course(self) -> None:
        course_id = selected_id(self.courses_tree)
        if course_id is None:
            return
        self.run_in_background(f"select:{course_id}", lambda: self.loader.select_course(course_id),
                               lambda _detail: self._render_selected())

    def _join_course(self) -> None:
        values = ask_form(self.frame, "Join course", [
            ("course_id", "Course ID", "entry", None),
            ("teacher_name", "Teacher name", "entry", None),
        ])
        if values is None:
            return

        def on_success(result: Dict[str, Any]) -> None:
            self.update()
            self.show_info(result.get("message") or "Enrollment successful")

        self.run_in_background("join", lambda: self.actions.join_course(values["course_id"], values["teacher_name"]),
                               on_success, lambda e: self.show_error(e, "Enrollment failed"))

    def _submit_from_overview(self) -> None:
        self._submit(selected_id(self.assignments_tree))

    def _submit_from_course(self) -> None:
        self._submit(selected_id(self.course_assignments))

    def _submit(self, assignment_id: Optional[int]) -> None:
        if assignment_id is None:
            self.show_info("Select an assignment first")
            return
        existing = self._submission_for(assignment_id)
        if existing is None and self.state.selected:
            existing = next((s for s in self.state.selected.submissions if s.assignment_id == assignment_id), None)
        values = ask_form(self.frame, "Edit submission" if existing else "Submit work", [
            ("content", "Your answer", "text", existing.content if existing else ""),
        ])
        if values is None:
            return
        if existing is not None:
            self.perform("submission", lambda: self.actions.update_submission(existing.submission_id, values["content"]),
                         "Submission updated")
        else:
            self.perform("submission", lambda: self.actions.create_submission(assignment_id, values["content"]),
                         "Submission created")

    def _edit_profile(self) -> None:
        profile = self.state.student_profile
        values = ask_form(self.frame, "Edit profile", [
            ("grade_level", "Grade level", "entry", profile.get("grade_level")),
            ("enrollment_year", "Enrollment year", "entry", profile.get("enrollment_year")),
        ])
        if values is None:
            return
        self.perform("profile", lambda: self.actions.update_profile(values["grade_level"], values["enrollment_year"]),
                     "Profile updated")
