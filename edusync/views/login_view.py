"""
Login and registration screen.
"""
import tkinter as tk
from tkinter import ttk
from typing import Any, Dict, Optional

from edusync.client.accounts import ROLES, register
from edusync.client.errors import ValidationError
from edusync.core.component_base import DashboardComponent


class LoginView(DashboardComponent):
    name = "Login"

    def __init__(self, app, config: Dict[str, Any], message: Optional[str] = None):
        super().__init__(app, config)
        self.message = message

    def initialize(self, parent: tk.Widget) -> None:
        super().initialize(parent)
        pad = self.get_padding('medium')

        self.create_label(self.frame, text="EduSync", font_size="title", bold=True).pack(pady=(0, pad))
        self.status_label = self.create_label(self.frame, text=self.message or "", fg="#b00020")
        self.status_label.pack(fill=tk.X)

        notebook = ttk.Notebook(self.frame)
        notebook.pack(fill=tk.BOTH, expand=True, pady=pad)
        notebook.add(self._build_login(notebook), text="Log in")
        notebook.add(self._build_register(notebook), text="Register")

    def _entry_row(self, parent, row: int, label: str, show: Optional[str] = None) -> tk.Entry:
        self.create_label(parent, text=label).grid(row=row, column=0, sticky="w", padx=5, pady=4)
        entry = tk.Entry(parent, width=40, show=show or "")
        entry.grid(row=row, column=1, sticky="we", padx=5, pady=4)
        return entry

    def _build_login(self, parent) -> tk.Frame:
        form = tk.Frame(parent)
        self.email_entry = self._entry_row(form, 0, "Email")
        self.password_entry = self._entry_row(form, 1, "Password", show="*")
        self.login_button = tk.Button(form, text="Log in", command=self._login)
        self.login_button.grid(row=2, column=1, sticky="e", padx=5, pady=8)
        self.password_entry.bind("<Return>", lambda e: self._login())
        return form

    def _build_register(self, parent) -> tk.Frame:
        form = tk.Frame(parent)
        self.reg_name = self._entry_row(form, 0, "Name")
        self.reg_email = self._entry_row(form, 1, "Email")
        self.reg_password = self._entry_row(form, 2, "Password", show="*")
        self.create_label(form, text="Role").grid(row=3, column=0, sticky="w", padx=5, pady=4)
        self.reg_role = ttk.Combobox(form, values=ROLES, state="readonly", width=37)
        self.reg_role.set(ROLES[0])
        self.reg_role.grid(row=3, column=1, sticky="we", padx=5, pady=4)
        self.reg_grade = self._entry_row(form, 4, "Grade level (students)")
        self.reg_year = self._entry_row(form, 5, "Enrollment year (students)")
        self.reg_department = self._entry_row(form, 6, "Department (teachers)")
        tk.Button(form, text="Create account", command=self._register).grid(row=7, column=1, sticky="e", padx=5, pady=8)
        return form

    def _set_status(self, text: str, error: bool = True) -> None:
        if self.frame is not None:
            self.status_label.configure(text=text, fg="#b00020" if error else "#1b5e20")

    def _login(self) -> None:
        email = self.email_entry.get().strip()
        password = self.password_entry.get()
        if not email or not password:
            self._set_status("Please enter your email and password")
            return
        self.login_button.configure(state=tk.DISABLED)
        self._set_status("Logging in...", error=False)

        def on_success(_user) -> None:
            self.app.show_dashboard()

        def on_error(error: Exception) -> None:
            self.login_button.configure(state=tk.NORMAL)
            self._set_status(str(error))

        self.run_in_background("login", lambda: self.app.session.login(email, password), on_success, on_error)

    def _register(self) -> None:
        values = {
            "name": self.reg_name.get(),
            "email": self.reg_email.get(),
            "password": self.reg_password.get(),
            "role": self.reg_role.get(),
            "grade_level": self.reg_grade.get().strip() or None,
            "enrollment_year": self.reg_year.get().strip() or None,
            "department": self.reg_department.get().strip() or None,
        }

        def do_register() -> Any:
            return register(self.app.client, **values)

        def on_success(_result) -> None:
            self._set_status("Account created, you can log in now", error=False)
            self.email_entry.delete(0, tk.END)
            self.email_entry.insert(0, values["email"].strip())

        def on_error(error: Exception) -> None:
            self._set_status(str(error) if isinstance(error, ValidationError) else f"Registration failed: {error}")

        self.run_in_background("register", do_register, on_success, on_error)

    def update(self) -> None:
        pass
