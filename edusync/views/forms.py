"""
Modal form dialog used by the dashboards for create/edit actions.
"""
import tkinter as tk
from tkinter import simpledialog, ttk
from typing import Any, Dict, List, Optional, Sequence, Tuple

# (key, label, kind, default); kind: "entry" | "text" | "check" | tuple of choices
Field = Tuple[str, str, Any, Any]


class FormDialog(simpledialog.Dialog):
    """Ask for several values at once. result is a dict, or None when cancelled."""

    def __init__(self, parent, title: str, fields: Sequence[Field]):
        self.fields: List[Field] = list(fields)
        self.widgets: Dict[str, Any] = {}
        self.result: Optional[Dict[str, Any]] = None
        super().__init__(parent, title)

    def body(self, master):
        first = None
        for row, (key, label, kind, default) in enumerate(self.fields):
            tk.Label(master, text=label, anchor="w").grid(row=row, column=0, sticky="nw", padx=5, pady=3)
            if kind == "text":
                widget = tk.Text(master, width=48, height=6, wrap=tk.WORD)
                if default:
                    widget.insert("1.0", str(default))
            elif kind == "check":
                var = tk.BooleanVar(value=bool(default))
                widget = tk.Checkbutton(master, variable=var)
                widget.var = var
            elif isinstance(kind, tuple):
                widget = ttk.Combobox(master, values=kind, state="readonly", width=46)
                widget.set(default if default is not None else kind[0])
            else:
                widget = tk.Entry(master, width=50)
                if default is not None:
                    widget.insert(0, str(default))
            widget.grid(row=row, column=1, sticky="we", padx=5, pady=3)
            self.widgets[key] = widget
            first = first or widget
        return first

    def apply(self):
        values: Dict[str, Any] = {}
        for key, _label, kind, _default in self.fields:
            widget = self.widgets[key]
            if kind == "text":
                values[key] = widget.get("1.0", tk.END).strip()
            elif kind == "check":
                values[key] = widget.var.get()
            else:
                values[key] = widget.get().strip()
        self.result = values


def ask_form(parent, title: str, fields: Sequence[Field]) -> Optional[Dict[str, Any]]:
    return FormDialog(parent, title, fields).result
