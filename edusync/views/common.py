"""
Shared layout for the role dashboards: header, load errors, tabbed body and
tree helpers. Subclasses build tabs and render the loader state.
"""
import tkinter as tk
from tkinter import ttk
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from edusync.client.formatters import format_date, get_relative_time, is_due_date_over
from edusync.client.schemas import Announcement, Assignment, DashboardState
from edusync.core.component_base import DashboardComponent


def make_tree(parent, columns: Sequence[str], height: int = 8) -> ttk.Treeview:
    frame = tk.Frame(parent)
    frame.pack(fill=tk.BOTH, expand=True)
    tree = ttk.Treeview(frame, columns=list(columns), show="headings", height=height, selectmode="browse")
    for column in columns:
        tree.heading(column, text=column)
        tree.column(column, width=120, stretch=True)
    scrollbar = ttk.Scrollbar(frame, orient=tk.VERTICAL, command=tree.yview)
    tree.configure(yscrollcommand=scrollbar.set)
    tree.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
    scrollbar.pack(side=tk.RIGHT, fill=tk.Y)
    return tree


def fill_tree(tree: ttk.Treeview, rows: Iterable[Sequence[Any]], ids: Optional[Iterable[Any]] = None) -> None:
    """Replace tree rows; row iid is the entity id so selection maps back to it."""
    tree.delete(*tree.get_children())
    ids = list(ids) if ids is not None else None
    for index, row in enumerate(rows):
        iid = str(ids[index]) if ids is not None else None
        tree.insert("", tk.END, iid=iid, values=["" if value is None else value for value in row])


def selected_id(tree: ttk.Treeview) -> Optional[int]:
    selection = tree.selection()
    return int(selection[0]) if selection else None


def due_columns(assignment: Assignment) -> List[str]:
    """Due date, relative time and an overdue marker for an assignment row."""
    overdue = "Overdue" if is_due_date_over(assignment.due_date) else ""
    return [format_date(assignment.due_date), get_relative_time(assignment.due_date), overdue]


def announcement_title(announcement: Announcement) -> str:
    return f"[Pinned] {announcement.title}" if announcement.is_pinned else announcement.title


def button_row(parent, buttons: Sequence[tuple]) -> tk.Frame:
    """Pack a row of (text, command) buttons."""
    row = tk.Frame(parent)
    row.pack(fill=tk.X, pady=4)
    for text, command in buttons:
        tk.Button(row, text=text, command=command).pack(side=tk.LEFT, padx=(0, 6))
    return row


class RoleDashboard(DashboardComponent):
    """Header with refresh/logout, load error banner and a notebook of tabs."""

    role = ""

    def __init__(self, app, config: Dict[str, Any]):
        super().__init__(app, config)
        self.loader = app.loader
        self.notebook: Optional[ttk.Notebook] = None

    @property
    def state(self) -> DashboardState:
        return self.loader.state

    def initialize(self, parent: tk.Widget) -> None:
        super().initialize(parent)
        header = tk.Frame(self.frame)
        header.pack(fill=tk.X)
        self.welcome_label = self.create_label(header, text="Loading...", font_size="title", bold=True)
        self.welcome_label.pack(side=tk.LEFT)
        tk.Button(header, text="Log out", command=self.app.logout).pack(side=tk.RIGHT)
        tk.Button(header, text="Refresh", command=self.refresh).pack(side=tk.RIGHT, padx=6)

        self.error_label = self.create_label(self.frame, text="", fg="#b00020", font_size="small")
        self.error_label.pack(fill=tk.X)

        self.notebook = ttk.Notebook(self.frame)
        self.notebook.pack(fill=tk.BOTH, expand=True, pady=self.get_padding('small'))
        self.build_tabs(self.notebook)
        self.refresh()

    def add_tab(self, title: str) -> tk.Frame:
        tab = tk.Frame(self.notebook)
        self.notebook.add(tab, text=title)
        return tab

    def build_tabs(self, notebook: ttk.Notebook) -> None:
        raise NotImplementedError

    def refresh(self) -> None:
        self.run_in_background("load", lambda: self.loader.load(self.role), lambda _state: self.update())

    def perform(self, name: str, action: Callable[[], Any], success_message: Optional[str] = None) -> None:
        """Run a mutation in the background and redraw when it lands."""
        def on_success(_result: Any) -> None:
            self.update()
            if success_message:
                self.show_info(success_message)

        self.run_in_background(name, action, on_success)

    def update(self) -> None:
        if self.frame is None:
            return
        user = self.state.user or self.app.session.user
        name = user.name if user and user.name else "there"
        self.welcome_label.configure(text=f"Welcome, {name}")
        errors = "; ".join(f"{step}: {message}" for step, message in self.state.errors.items())
        self.error_label.configure(text=f"Some data could not be loaded ({errors})" if errors else "")
        self.render()

    def render(self) -> None:
        raise NotImplementedError
