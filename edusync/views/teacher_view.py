"""
Teacher dashboard: stats, upcoming assignments, and per-course management of
assignments, submissions, announcements, materials and students.
"""
import tkinter as tk
from tkinter import messagebox
from typing import Any, Dict, Optional

from edusync.client.formatters import format_date
from edusync.client.mutations import TeacherActions, find
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

MATERIAL_TYPES = ("document", "video", "link", "presentation", "other")


class TeacherDashboard(RoleDashboard):
    name = "Teacher Dashboard"
    role = "teacher"

    def __init__(self, app, config: Dict[str, Any]):
        super().__init__(app, config)
        self.actions = TeacherActions(self.loader)

    def build_tabs(self, notebook) -> None:
        overview = self.add_tab("Overview")
        self.stats_label = self.create_label(overview, text="", font_size="heading")
        self.stats_label.pack(fill=tk.X, pady=4)
        self.create_label(overview, text="Upcoming assignments", font_size="heading", bold=True).pack(fill=tk.X)
        self.upcoming_tree = make_tree(overview, ("Assignment", "Course", "Due", "When", "Overdue"))

        courses = self.add_tab("Courses")
        button_row(courses, [
            ("New course", self._create_course),
            ("Edit course", self._edit_course),
            ("Delete course", self._delete_course),
        ])
        self.courses_tree = make_tree(courses, ("ID", "Course", "Subject", "Students", "Assignments"), height=8)
        self.courses_tree.bind("<<TreeviewSelect>>", lambda e: self._select_course())

        course = self.add_tab("Selected course")
        self.course_title = self.create_label(course, text="Select a course on the Courses tab", font_size="heading", bold=True)
        self.course_title.pack(fill=tk.X)

        button_row(course, [
            ("New assignment", self._create_assignment),
            ("Edit assignment", self._edit_assignment),
            ("Delete assignment", self._delete_assignment),
        ])
        self.assignments_tree = make_tree(course, ("Assignment", "Due", "When", "Overdue", "Max points", "Average"), height=4)

        button_row(course, [("Grade submission", self._grade_submission)])
        self.submissions_tree = make_tree(course, ("Submission", "Assignment", "Student", "Submitted", "Score"), height=4)

        button_row(course, [
            ("New announcement", self._create_announcement),
            ("Edit announcement", self._edit_announcement),
            ("Delete announcement", self._delete_announcement),
        ])
        self.announcements_tree = make_tree(course, ("Announcement", "Posted", "Content"), height=3)

        button_row(course, [
            ("New material", self._create_material),
            ("Edit material", self._edit_material),
            ("Delete material", self._delete_material),
        ])
        self.materials_tree = make_tree(course, ("Material", "Type", "File"), height=3)

        button_row(course, [("Remove student", self._remove_student)])
        self.students_tree = make_tree(course, ("Student", "Email", "Grade level"), height=3)

    # --- rendering --------------------------------------------------------

    def render(self) -> None:
        state = self.state
        self.stats_label.configure(
            text=f"Students: {state.stats.total_students}    Assignments: {state.stats.total_assignments}    "
                 f"Courses: {len(state.courses)}"
        )
        titles = {c.course_id: c.title for c in state.courses}
        fill_tree(
            self.upcoming_tree,
            [[a.title, titles.get(a.course_id, ""), *due_columns(a)] for a in state.upcoming],
            [a.assignment_id for a in state.upcoming],
        )
        fill_tree(
            self.courses_tree,
            [[c.course_id, c.title, c.subject, c.students, c.assignments] for c in state.courses],
            [c.course_id for c in state.courses],
        )
        self._render_selected()

    def _render_selected(self) -> None:
        selected = self.state.selected
        trees = (self.assignments_tree, self.submissions_tree, self.announcements_tree, self.materials_tree, self.students_tree)
        if selected is None:
            self.course_title.configure(text="Select a course on the Courses tab")
            for tree in trees:
                fill_tree(tree, [])
            return
        self.course_title.configure(text=selected.course.title)

        def average(assignment_id: int) -> str:
            stats = selected.stats.get(assignment_id)
            return "" if stats is None or stats.average_score is None else f"{stats.average_score:.1f}"

        fill_tree(
            self.assignments_tree,
            [[a.title, *due_columns(a), a.max_points, average(a.assignment_id)] for a in selected.assignments],
            [a.assignment_id for a in selected.assignments],
        )
        titles = {a.assignment_id: a.title for a in selected.assignments}
        students = {s.student_id: s.name for s in selected.students}
        fill_tree(
            self.submissions_tree,
            [[s.submission_id, titles.get(s.assignment_id, ""), students.get(s.student_id, s.student_id),
              format_date(s.submitted_at), "" if s.score is None else s.score]
             for s in selected.submissions],
            [s.submission_id for s in selected.submissions],
        )
        fill_tree(
            self.announcements_tree,
            [[announcement_title(a), format_date(a.created_at), a.content] for a in selected.announcements],
            [a.announcement_id for a in selected.announcements],
        )
        fill_tree(
            self.materials_tree,
            [[m.title, m.type, m.file_path] for m in selected.materials],
            [m.material_id for m in selected.materials],
        )
        fill_tree(
            self.students_tree,
            [[s.name, s.email, s.grade_level] for s in selected.students],
            [s.student_id for s in selected.students],
        )

    # --- helpers ----------------------------------------------------------

    def _selected_course_id(self) -> Optional[int]:
        if self.state.selected is None:
            self.show_info("Select a course first")
            return None
        return self.state.selected.course.course_id

    def _picked(self, tree, what: str) -> Optional[int]:
        picked = selected_id(tree)
        if picked is None:
            self.show_info(f"Select a {what} first")
        return picked

    def _confirm(self, message: str) -> bool:
        return messagebox.askyesno("Confirm", message, parent=self.frame)

    # --- courses ----------------------------------------------------------

    def _select_course(self) -> None:
        course_id = selected_id(self.courses_tree)
        if course_id is None:
            return
        self.run_in_background(f"select:{course_id}", lambda: self.loader.select_course(course_id),
                               lambda _detail: self._render_selected())

    def _course_form(self, title: str, course=None) -> Optional[Dict[str, Any]]:
        return ask_form(self.frame, title, [
            ("title", "Title", "entry", course.title if course else None),
            ("subject", "Subject", "entry", course.subject if course else None),
            ("description", "Description", "text", course.description if course else None),
        ])

    def _create_course(self) -> None:
        values = self._course_form("New course")
        if values is not None:
            self.perform("course", lambda: self.actions.create_course(**values), "Course created")

    def _edit_course(self) -> None:
        course_id = self._picked(self.courses_tree, "course")
        if course_id is None:
            return
        values = self._course_form("Edit course", self.loader.find_course(course_id))
        if values is not None:
            self.perform("course", lambda: self.actions.update_course(course_id, **values), "Course updated")

    def _delete_course(self) -> None:
        course_id = self._picked(self.courses_tree, "course")
        if course_id is not None and self._confirm("Delete this course and everything in it?"):
            self.perform("course", lambda: self.actions.delete_course(course_id))

    # --- assignments ------------------------------------------------------

    def _assignment_form(self, title: str, assignment=None) -> Optional[Dict[str, Any]]:
        return ask_form(self.frame, title, [
            ("title", "Title", "entry", assignment.title if assignment else None),
            ("due_date", "Due (YYYY-MM-DD HH:MM)", "entry", assignment.due_date if assignment else None),
            ("max_points", "Max points", "entry", assignment.max_points if assignment else 100),
            ("description", "Description", "text", assignment.description if assignment else None),
        ])

    def _create_assignment(self) -> None:
        course_id = self._selected_course_id()
        if course_id is None:
            return
        values = self._assignment_form("New assignment")
        if values is not None:
            self.perform("assignment", lambda: self.actions.create_assignment(course_id, **values), "Assignment created")

    def _edit_assignment(self) -> None:
        assignment_id = self._picked(self.assignments_tree, "assignment")
        if assignment_id is None:
            return
        values = self._assignment_form("Edit assignment", find(self.state.selected.assignments, "assignment_id", assignment_id))
        if values is not None:
            course_id = self.state.selected.course.course_id
            self.perform("assignment", lambda: self.actions.update_assignment(assignment_id, course_id=course_id, **values),
                         "Assignment updated")

    def _delete_assignment(self) -> None:
        assignment_id = self._picked(self.assignments_tree, "assignment")
        if assignment_id is not None and self._confirm("Delete this assignment?"):
            self.perform("assignment", lambda: self.actions.delete_assignment(assignment_id))

    def _grade_submission(self) -> None:
        submission_id = self._picked(self.submissions_tree, "submission")
        if submission_id is None:
            return
        submission = find(self.state.selected.submissions, "submission_id", submission_id)
        values = ask_form(self.frame, "Grade submission", [
            ("content", "Answer", "text", submission.content if submission else ""),
            ("score", "Score", "entry", submission.score if submission else None),
            ("feedback", "Feedback", "text", submission.feedback if submission else None),
        ])
        if values is not None:
            self.perform("grade", lambda: self.actions.grade_submission(submission_id, values["score"], values["feedback"]),
                         "Grade saved")

    # --- announcements ----------------------------------------------------

    def _announcement_form(self, title: str, announcement=None) -> Optional[Dict[str, Any]]:
        return ask_form(self.frame, title, [
            ("title", "Title", "entry", announcement.title if announcement else None),
            ("content", "Content", "text", announcement.content if announcement else None),
            ("is_pinned", "Pinned", "check", announcement.is_pinned if announcement else False),
        ])

    def _create_announcement(self) -> None:
        course_id = self._selected_course_id()
        if course_id is None:
            return
        values = self._announcement_form("New announcement")
        if values is not None:
            self.perform("announcement", lambda: self.actions.create_announcement(course_id, **values), "Announcement posted")

    def _edit_announcement(self) -> None:
        announcement_id = self._picked(self.announcements_tree, "announcement")
        if announcement_id is None:
            return
        values = self._announcement_form(
            "Edit announcement", find(self.state.selected.announcements, "announcement_id", announcement_id)
        )
        if values is not None:
            self.perform("announcement", lambda: self.actions.update_announcement(announcement_id, **values))

    def _delete_announcement(self) -> None:
        announcement_id = self._picked(self.announcements_tree, "announcement")
        if announcement_id is not None and self._confirm("Delete this announcement?"):
            self.perform("announcement", lambda: self.actions.delete_announcement(announcement_id))

    # --- materials --------------------------------------------------------

    def _material_form(self, title: str, material=None) -> Optional[Dict[str, Any]]:
        return ask_form(self.frame, title, [
            ("title", "Title", "entry", material.title if material else None),
            ("file_path", "File path or URL", "entry", material.file_path if material else None),
            ("type", "Type", MATERIAL_TYPES, material.type if material and material.type in MATERIAL_TYPES else None),
            ("description", "Description", "text", material.description if material else None),
        ])

    def _create_material(self) -> None:
        course_id = self._selected_course_id()
        if course_id is None:
            return
        values = self._material_form("New material")
        if values is not None:
            self.perform("material", lambda: self.actions.create_material(course_id, **values), "Material added")

    def _edit_material(self) -> None:
        material_id = self._picked(self.materials_tree, "material")
        if material_id is None:
            return
        values = self._material_form("Edit material", find(self.state.selected.materials, "material_id", material_id))
        if values is not None:
            self.perform("material", lambda: self.actions.update_material(material_id, **values))

    def _delete_material(self) -> None:
        material_id = self._picked(self.materials_tree, "material")
        if material_id is not None and self._confirm("Delete this material?"):
            self.perform("material", lambda: self.actions.delete_material(material_id))

    # --- students ---------------------------------------------------------

    def _remove_student(self) -> None:
        course_id = self._selected_course_id()
        if course_id is None:
            return
        student_id = self._picked(self.students_tree, "student")
        if student_id is not None and self._confirm("Remove this student from the course?"):
            self.perform("student", lambda: self.actions.remove_student(course_id, student_id))
