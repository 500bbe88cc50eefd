import yaml
from pathlib import Path
import os
import copy
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
import logging
import re

DEFAULT_CONFIG: Dict[str, Any] = {
    "cache": {
        "directory": "data",
        "ttl_hours": 24,
    },
    "sessions": {
        "directory": "sessions",
        "ttl_hours": 24,
    },
    "force_refresh": False,
    "fetch_timeout": 180,
    "browser": {
        "backend": "playwright",  # or "agent-browser"
        "headless": True,
        "step_timeout": 30,
    },
    "providers": [],
    "database": {
        "enabled": False,
        "path": "~/.billtracker/billtracker.db",
    },
    "logging": {
        "level": "INFO",
    },
    "api": {
        "host": "127.0.0.1",
        "port": 8765,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


class TrackerConfig:
    """
    Configuration built once at startup and passed to whatever needs it.
    The process environment (plus .env) is snapshotted here; nothing else reads os.environ.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        self.environ: Dict[str, str] = dict(os.environ if environ is None else environ)

        if config_path:
            self.config_file = Path(config_path).expanduser().resolve()
            self.config_dir = self.config_file.parent
        else:
            self.config_file = None
            self.config_dir = Path.cwd()

        if environ is None:
            self._load_env_file()

        if data is not None:
            self.data = _merge(DEFAULT_CONFIG, self._substitute_env_vars(data))
        else:
            self._load_config()

    def _load_env_file(self) -> None:
        """Load variables from a .env file into the environment snapshot (existing values win)."""
        env_files = [
            self.config_dir / ".env",
            self.config_dir.parent / ".env",
            Path.cwd() / ".env",
        ]

        env_file = None
        for path in env_files:
            if path.exists():
                env_file = path
                break

        if not env_file:
            logging.debug("No .env file found, skipping environment variable loading")
            return

        logging.info(f"Loading environment variables from: {env_file}")
        try:
            with open(env_file, 'r') as f:
                for line in f:
                    line = line.strip()
                    # Skip empty lines and comments
                    if not line or line.startswith('#'):
                        continue

                    match = re.match(r'^([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$', line)
                    if match:
                        key, value = match.groups()
                        value = value.strip('"').strip("'")
                        if key not in self.environ:
                            self.environ[key] = value
                            logging.debug(f"Loaded env var: {key}")
        except OSError as e:
            logging.warning(f"Error loading .env file: {e}")

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute ${VAR_NAME} / $VAR_NAME strings from the environment snapshot"""
        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):
            if data.startswith('${') and data.endswith('}'):
                var_name = data[2:-1]
                return self.environ.get(var_name, data)
            elif data.startswith('$') and len(data) > 1:
                var_name = data[1:]
                return self.environ.get(var_name, data)
            return data
        else:
            return data

    def _load_config(self) -> None:
        """Load configuration from file, falling back to defaults"""
        if self.config_file is None or not self.config_file.exists():
            logging.info(f"Config file not found ({self.config_file}), using defaults")
            self.data = copy.deepcopy(DEFAULT_CONFIG)
            return
        try:
            logging.debug(f"Loading config from: {self.config_file}")
            with open(self.config_file) as f:
                new_data = yaml.safe_load(f) or {}

            if not isinstance(new_data, dict):
                raise ValueError("Invalid config format: root must be a dictionary")

            self.data = _merge(DEFAULT_CONFIG, self._substitute_env_vars(new_data))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logging.error(f"Error loading config: {e}")
            logging.info("Using default configuration")
            self.data = copy.deepcopy(DEFAULT_CONFIG)

    def env(self, name: str) -> Optional[str]:
        """Value from the environment snapshot."""
        return self.environ.get(name)

    def _expand(self, path: str) -> str:
        p = Path(os.path.expanduser(path))
        if not p.is_absolute():
            p = self.config_dir / p
        return str(p)

    @property
    def cache_dir(self) -> str:
        return self._expand(self.data["cache"]["directory"])

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=float(self.data["cache"]["ttl_hours"]))

    @property
    def session_dir(self) -> str:
        return self._expand(self.data["sessions"]["directory"])

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=float(self.data["sessions"]["ttl_hours"]))

    @property
    def force_refresh(self) -> bool:
        if str(self.environ.get("BILL_FORCE_FETCH", "")).lower() == "true":
            return True
        return bool(self.data.get("force_refresh"))

    @property
    def fetch_timeout(self) -> Optional[float]:
        value = self.data.get("fetch_timeout")
        return float(value) if value else None

    @property
    def browser_backend(self) -> str:
        return self.data["browser"]["backend"]

    @property
    def headless(self) -> bool:
        return bool(self.data["browser"]["headless"])

    @property
    def step_timeout(self) -> float:
        return float(self.data["browser"]["step_timeout"])

    @property
    def database_enabled(self) -> bool:
        return bool(self.data["database"].get("enabled"))

    @property
    def database_path(self) -> str:
        return self._expand(self.data["database"]["path"])

    @property
    def logging_level(self) -> str:
        return str(self.data["logging"].get("level", "INFO")).upper()

    @property
    def logging_file(self) -> Optional[str]:
        path = self.data["logging"].get("file")
        return self._expand(path) if path else None

    @property
    def api_host(self) -> str:
        return self.data["api"]["host"]

    @property
    def api_port(self) -> int:
        return int(self.data["api"]["port"])

    def provider_entries(self) -> List[Dict[str, Any]]:
        """Provider settings from config; each gets an 'id' (defaults to lower-cased type)."""
        entries = []
        for i, entry in enumerate(self.data.get("providers") or []):
            if isinstance(entry, str):
                entry = {"type": entry}
            if not isinstance(entry, dict) or not entry.get("type"):
                logging.warning(f"Config providers[{i}] has no type, skipping")
                continue
            entry = dict(entry)
            entry.setdefault("id", str(entry["type"]).lower())
            entry["id"] = str(entry["id"]).lower()
            entries.append(entry)
        return entries

    def selected_provider_ids(self, only: Optional[Sequence[str]] = None) -> List[str]:
        """
        Ids to run: explicit `only` (CLI), else BILL_PROVIDERS, else `enabled_providers`,
        else every entry not disabled with enable: false.
        """
        if only:
            return [p.strip().lower() for p in only if p and p.strip()]
        configured = self.environ.get("BILL_PROVIDERS") or ""
        if configured.strip():
            return [p.strip().lower() for p in configured.split(",") if p.strip()]
        enabled = self.data.get("enabled_providers")
        if enabled:
            return [str(p).strip().lower() for p in enabled]
        return [e["id"] for e in self.provider_entries() if e.get("enable", True)]
