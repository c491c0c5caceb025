from abc import ABC, abstractmethod
import tkinter as tk
import tkinter.messagebox as messagebox
from typing import Optional, Dict, Any, Callable
import logging

from edusync.client.errors import AuthenticationError

# Base window dimensions for responsive scaling
BASE_WINDOW_WIDTH = 1100
BASE_WINDOW_HEIGHT = 720


class DashboardComponent(ABC):
    """One screen of the app (login, student or teacher dashboard)."""

    def __init__(self, app, config: Dict[str, Any]):
        self.frame: Optional[tk.Frame] = None
        self.config = config
        self.app = app
        self.logger = logging.getLogger(self.name)

    def _get_window_dimensions(self) -> tuple:
        root = getattr(self.app, 'root', None)
        if root is not None and root.winfo_exists():
            width = root.winfo_width()
            height = root.winfo_height()
            if width > 1 and height > 1:
                return width, height
        return BASE_WINDOW_WIDTH, BASE_WINDOW_HEIGHT

    def _scale(self) -> float:
        window_width, window_height = self._get_window_dimensions()
        scale = (window_width / BASE_WINDOW_WIDTH + window_height / BASE_WINDOW_HEIGHT) / 2
        return max(0.75, min(1.5, scale))

    def get_responsive_fonts(self) -> dict:
        scale = self._scale()
        return {
            'title': max(12, int(18 * scale)),
            'heading': max(10, int(14 * scale)),
            'body': max(9, int(11 * scale)),
            'small': max(8, int(9 * scale)),
        }

    def get_padding(self, size='medium') -> int:
        scale = self._scale()
        padding = {
            'small': max(3, int(5 * scale)),
            'medium': max(5, int(10 * scale)),
            'large': max(8, int(15 * scale)),
        }
        return padding.get(size, padding['medium'])

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    def initialize(self, parent: tk.Widget) -> None:
        """Create the component frame inside parent; subclasses add their widgets."""
        self.frame = tk.Frame(parent)
        padding = self.get_padding('medium')
        self.frame.pack(pady=padding, padx=padding, fill=tk.BOTH, expand=True)

    def create_label(self, parent, text="", font_size="body", bold=False, **kwargs) -> tk.Label:
        fonts = self.get_responsive_fonts()
        size = fonts.get(font_size, fonts['body']) if isinstance(font_size, str) else int(font_size * self._scale())
        family = self.config.get('font_family', 'Arial')
        font = (family, size, "bold") if bold else (family, size)
        kwargs.setdefault('anchor', 'w')
        return tk.Label(parent, text=text, font=font, **kwargs)

    @abstractmethod
    def update(self) -> None:
        """Redraw from the loader state."""
        pass

    def run_in_background(
        self,
        name: str,
        fn: Callable[[], Any],
        on_success: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> bool:
        """Run fn off the Tk thread; on_success/on_error are called back on it."""
        def done(result: Any, error: Optional[BaseException]) -> None:
            if self.frame is None:
                return
            if error is None:
                if on_success:
                    on_success(result)
                return
            if isinstance(error, AuthenticationError):
                self.app.show_login(str(error))
            elif on_error:
                on_error(error)
            else:
                self.show_error(error)

        return self.app.task_manager.submit(f"{self.name}:{name}", fn, done)

    def show_error(self, error: Exception, title: str = "Error") -> None:
        self.logger.error(f"{title}: {error}")
        messagebox.showerror(title, str(error), parent=self.frame)

    def show_info(self, message: str, title: str = "EduSync") -> None:
        messagebox.showinfo(title, message, parent=self.frame)

    def destroy(self) -> None:
        if self.frame is not None:
            if self.frame.winfo_exists():
                self.frame.destroy()
            self.frame = None
        self.logger.debug(f"Component {self.name} destroyed")
