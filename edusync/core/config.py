import yaml
from pathlib import Path
import os
from typing import Any, Dict, Optional, List, Callable
import logging
import copy
import time
import re

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileModifiedEvent

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": {
        "base_url": "http://localhost:8080/api",
        "timeout": None,  # seconds; None waits indefinitely
        "max_workers": 8,
    },
    "session": {
        "store": "database",  # database | memory
        "profile": "default",
    },
    "database": {
        "path": "~/.edusync/edusync.db",
    },
    "logging": {
        "level": "INFO",
        "file": "~/.edusync/edusync.log",
    },
    "window": {
        "width": 1100,
        "height": 720,
        "title": "EduSync",
    },
    "api": {
        "enabled": False,
        "host": "127.0.0.1",
        "port": 8765,
    },
}

_ENV_PATTERN = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$')


def merge_defaults(data: Dict[str, Any], defaults: Dict[str, Any] = DEFAULT_CONFIG) -> Dict[str, Any]:
    """Fill sections and keys missing from data with defaults; values in data win."""
    merged = copy.deepcopy(defaults)
    for key, value in (data or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_defaults(value, merged[key])
        else:
            merged[key] = value
    return merged


class ConfigChangeHandler(FileSystemEventHandler):
    def __init__(self, config):
        self.config = config
        self.last_modified = 0
        self.cooldown = 1.0  # seconds

    def on_modified(self, event):
        if not isinstance(event, FileModifiedEvent):
            return

        current_time = time.time()
        if current_time - self.last_modified < self.cooldown:
            return

        if Path(event.src_path).resolve() == self.config.config_file:
            self.last_modified = current_time
            self.config.reload()


class Config:
    """YAML settings with .env loading and $VAR substitution, reloaded when the file changes.

    root is anything with after_idle (a tk.Tk); change callbacks then run on its thread.
    """

    def __init__(self, root: Any = None, config_path: Optional[str] = None, watch: bool = True):
        self.root = root
        self.change_callbacks: List[Callable[[Dict[str, Any]], None]] = []
        self._loading = False
        self.observer = None
        self.logger = logging.getLogger(self.__class__.__name__)

        if config_path:
            self.config_file = Path(config_path).expanduser().resolve()
        else:
            self.config_file = (Path.cwd() / "config.yaml").resolve()
        self.config_dir = self.config_file.parent
        self.logger.debug(f"Using config file: {self.config_file}")

        self._load_env_file()
        self._ensure_config_exists()
        self._load_config()

        if watch:
            self.observer = Observer()
            self.observer.schedule(ConfigChangeHandler(self), str(self.config_dir), recursive=False)
            self.observer.start()
            self.logger.info(f"Watching {self.config_dir} for config changes")

    def get(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """Section dict, or one key of it."""
        values = self.data.get(section) or {}
        if key is None:
            return values
        value = values.get(key) if isinstance(values, dict) else None
        return default if value is None else value

    def register_change_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self.change_callbacks.append(callback)

    def reload(self) -> None:
        """Reload config and notify listeners"""
        if self._loading:
            return

        self._loading = True
        try:
            self.logger.info("Config file change detected - reloading configuration")
            # the writer may not have finished yet
            time.sleep(0.1)

            old_config = copy.deepcopy(self.data)
            self._load_config()
            self._log_config_changes(old_config, self.data)

            for callback in self.change_callbacks:
                if self.root is not None:
                    self.root.after_idle(lambda cb=callback: cb(self.data))
                else:
                    try:
                        callback(self.data)
                    except Exception as e:
                        self.logger.error(f"Error in config change callback: {e}")
        finally:
            self._loading = False

    def _log_config_changes(self, old_config: Dict, new_config: Dict) -> None:
        def compare_dict(path: str, old: Dict, new: Dict) -> None:
            for key in sorted(set(old) | set(new)):
                current_path = f"{path}.{key}" if path else key
                if key in old and key in new:
                    if isinstance(old[key], dict) and isinstance(new[key], dict):
                        compare_dict(current_path, old[key], new[key])
                    elif old[key] != new[key]:
                        self.logger.info(f"Config changed: {current_path}: {old[key]} -> {new[key]}")
                elif key in old:
                    self.logger.info(f"Config removed: {current_path}")
                else:
                    self.logger.info(f"Config added: {current_path}: {new[key]}")

        compare_dict("", old_config, new_config)

    def cleanup(self) -> None:
        """Stop the file observer"""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def _ensure_config_exists(self) -> None:
        if not self.config_dir.exists():
            self.logger.info(f"Creating config directory: {self.config_dir}")
            self.config_dir.mkdir(parents=True)

        if not self.config_file.exists():
            self.logger.info(f"Creating default config file: {self.config_file}")
            self.config_file.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False))

    def _load_env_file(self) -> None:
        """Load KEY=VALUE lines from the first .env found; existing env vars win."""
        candidates = [self.config_dir / ".env", Path.cwd() / ".env"]
        env_file = next((path for path in candidates if path.exists()), None)
        if env_file is None:
            self.logger.debug("No .env file found, skipping environment variable loading")
            return

        self.logger.info(f"Loading environment variables from: {env_file}")
        try:
            with open(env_file, 'r') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#'):
                        continue
                    match = _ENV_PATTERN.match(line)
                    if match:
                        key, value = match.groups()
                        value = value.strip('"').strip("'")
                        if key not in os.environ:
                            os.environ[key] = value
                            self.logger.debug(f"Loaded env var: {key}")
        except OSError as e:
            self.logger.warning(f"Error loading .env file: {e}")

    def _substitute_env_vars(self, data: Any) -> Any:
        """Replace whole-string ${VAR} / $VAR values; unknown variables stay as written."""
        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        if isinstance(data, str):
            if data.startswith('${') and data.endswith('}'):
                return os.environ.get(data[2:-1], data)
            if data.startswith('$') and len(data) > 1:
                return os.environ.get(data[1:], data)
        return data

    def _load_config(self) -> None:
        try:
            with open(self.config_file) as f:
                new_data = yaml.safe_load(f) or {}
            if not isinstance(new_data, dict):
                raise ValueError("Invalid config format: root must be a dictionary")
            new_data = merge_defaults(self._substitute_env_vars(new_data))
        except (OSError, ValueError, yaml.YAMLError) as e:
            self.logger.error(f"Error loading config: {e}")
            if hasattr(self, 'data'):
                self.logger.info("Keeping previous configuration")
                return
            self.logger.info("Using default configuration")
            new_data = copy.deepcopy(DEFAULT_CONFIG)

        for section in ("logging", "database"):
            key = "file" if section == "logging" else "path"
            if new_data[section].get(key):
                new_data[section][key] = os.path.expanduser(str(new_data[section][key]))
        self.data = new_data
        self.logger.debug(f"Loaded config data: {self.data}")
