"""
Background jobs for the GUI: network calls run on worker threads and their
outcome is handed back to the Tk main loop through result_queue.
"""
import logging
import threading
from queue import Queue
from typing import Any, Callable, Dict, List, Optional, Tuple

# (name, result, error, callback); callback(result, error) runs on the Tk thread
TaskResult = Tuple[str, Any, Optional[BaseException], Optional[Callable[[Any, Optional[BaseException]], None]]]


class TaskManager:
    def __init__(self):
        self.tasks: Dict[str, threading.Thread] = {}
        self.result_queue: "Queue[TaskResult]" = Queue()
        self.logger = logging.getLogger("TaskManager")
        self._lock = threading.Lock()
        self._stopped = False

    def submit(
        self,
        name: str,
        fn: Callable[[], Any],
        callback: Optional[Callable[[Any, Optional[BaseException]], None]] = None,
    ) -> bool:
        """Run fn on a daemon thread. A job with the same name still running is not started twice."""
        with self._lock:
            if self._stopped:
                self.logger.debug(f"Task manager stopped, dropping {name}")
                return False
            running = self.tasks.get(name)
            if running is not None and running.is_alive():
                self.logger.debug(f"Task {name} already running")
                return False
            thread = threading.Thread(target=self._run_task, args=(name, fn, callback), daemon=True, name=f"task-{name}")
            self.tasks[name] = thread
        self.logger.debug(f"Starting task {name}")
        thread.start()
        return True

    def _run_task(self, name: str, fn: Callable[[], Any], callback) -> None:
        result, error = None, None
        try:
            result = fn()
        except Exception as e:
            self.logger.error(f"Task {name} failed: {e}")
            error = e
        finally:
            with self._lock:
                if self.tasks.get(name) is threading.current_thread():
                    del self.tasks[name]
        self.result_queue.put((name, result, error, callback))

    def is_running(self, name: str) -> bool:
        with self._lock:
            thread = self.tasks.get(name)
            return thread is not None and thread.is_alive()

    def get_active_tasks(self) -> List[str]:
        """Names of jobs still running (for the inspection API)."""
        with self._lock:
            return sorted(name for name, thread in self.tasks.items() if thread.is_alive())

    def drain(self) -> int:
        """Run callbacks of finished jobs on the calling (Tk) thread. Returns how many ran."""
        handled = 0
        while not self.result_queue.empty():
            name, result, error, callback = self.result_queue.get_nowait()
            self.logger.debug(f"Processing task result for {name}")
            handled += 1
            if callback is None:
                continue
            try:
                callback(result, error)
            except Exception as e:
                self.logger.exception(f"Callback for task {name} failed: {e}")
        return handled

    def stop(self) -> None:
        """Refuse new jobs; running ones finish on their own (daemon threads)."""
        with self._lock:
            self._stopped = True
