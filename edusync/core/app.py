import tkinter as tk
from typing import Dict, Any, Optional
import logging
import sys
from pathlib import Path

from edusync.client.api_client import ApiClient
from edusync.client.loader import DashboardLoader, DEFAULT_MAX_WORKERS
from edusync.client.session import Session, create_session_store
from .component_base import DashboardComponent
from .config import Config
from .db import init_db, dispose_db
from .task_manager import TaskManager

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
DRAIN_INTERVAL_MS = 100


class EduSyncApp:
    """Tk shell: shows the login view or the dashboard for the session's role."""

    def __init__(self, config_path: Optional[str] = None):
        self.root = tk.Tk()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.config = Config(root=self.root, config_path=config_path)
        self.config.register_change_callback(self.handle_config_change)

        self._setup_logging()
        self._configure_window()

        self.main_container = tk.Frame(self.root)
        self.main_container.pack(fill=tk.BOTH, expand=True)

        # tables must exist before the session store is read
        init_db(self.config.data)

        backend = self.config.get("backend")
        self.client = ApiClient.from_config(self.config.data)
        self.session = Session(self.client, create_session_store(self.config.data))
        self.loader = DashboardLoader(self.session, self.client, int(backend.get("max_workers") or DEFAULT_MAX_WORKERS))
        self.task_manager = TaskManager()
        self.session.add_logout_listener(self._on_logout)

        self.current: Optional[DashboardComponent] = None

        from edusync.api import run_api_server
        run_api_server(self)

    def _setup_logging(self):
        """Replace the basic stdout handler with file + stdout handlers at the configured level."""
        log_config = self.config.get("logging")
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO))

        formatter = logging.Formatter(LOG_FORMAT)

        log_file = log_config.get("file")
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        logging.info("EduSync starting...")

    def _configure_window(self) -> None:
        window_config = self.config.get("window")
        self.root.title(window_config.get("title", "EduSync"))
        self.root.geometry(f"{window_config.get('width', 1100)}x{window_config.get('height', 720)}")
        self.root.protocol("WM_DELETE_WINDOW", self.root.quit)

    # --- screens ----------------------------------------------------------

    def _show(self, component: DashboardComponent) -> None:
        if self.current is not None:
            self.current.destroy()
        self.current = component
        component.initialize(self.main_container)
        self.logger.info(f"Showing {component.name}")

    def show_login(self, message: Optional[str] = None) -> None:
        from edusync.views.login_view import LoginView
        self._show(LoginView(self, {}, message=message))

    def show_dashboard(self) -> None:
        role = self.session.role
        if role == "teacher":
            from edusync.views.teacher_view import TeacherDashboard
            self._show(TeacherDashboard(self, {}))
        elif role == "student":
            from edusync.views.student_view import StudentDashboard
            self._show(StudentDashboard(self, {}))
        else:
            self.logger.error(f"Unknown role {role!r}, logging out")
            self.session.logout()

    def logout(self) -> None:
        self.session.logout()

    def _on_logout(self) -> None:
        # may run on a worker thread; hand the screen switch to the Tk loop
        self.task_manager.result_queue.put(("logout", None, None, lambda _result, _error: self._after_logout()))

    def _after_logout(self) -> None:
        self.loader.sync()
        if self.current is not None and self.current.name == "Login":
            return
        self.show_login("You have been logged out")

    def _start_session(self) -> None:
        """Verify any stored token, then show the matching screen."""
        def done(_state, error) -> None:
            if error is not None:
                self.logger.error(f"Session check failed: {error}")
            if self.session.is_authenticated:
                self.show_dashboard()
            else:
                self.show_login()

        self.task_manager.submit("hydrate", self.session.hydrate, done)

    # --- loop -------------------------------------------------------------

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Apply settings that can change at runtime: logging level, window, backend."""
        self.logger.info("Handling config change")
        self._setup_logging()
        self._configure_window()
        backend = new_config.get("backend") or {}
        if backend.get("base_url") and backend["base_url"].rstrip("/") != self.client.base_url:
            self.logger.warning("backend.base_url changed; restart EduSync to use the new backend")
        timeout = backend.get("timeout")
        self.client.timeout = float(timeout) if timeout else None

    def _drain_result_queue(self) -> None:
        self.task_manager.drain()
        self.root.after(DRAIN_INTERVAL_MS, self._drain_result_queue)

    def run(self):
        try:
            self._start_session()
            self.root.after(DRAIN_INTERVAL_MS, self._drain_result_queue)
            self.root.mainloop()
        finally:
            self.task_manager.stop()
            self.loader.close()
            self.config.cleanup()
            dispose_db()
