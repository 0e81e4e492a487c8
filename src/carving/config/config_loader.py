"""
Configuration loader for the carving pipeline.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "case": {
        "module_dir": "local/case/ModuleOutput",
        "temp_dir": "local/case/Temp",
    },
    "engine": {
        "executable": None,
        "bundled_dir": None,
        "timeout_seconds": 3600,
        "poll_interval": 0.5,
        "kill_grace_seconds": 5.0,
    },
    "carver": {
        "keep_corrupted_files": False,
        "extension_filter": "no_filter",
        "extensions": [],
        "disk_space_margin": 1.2,
    },
    "storage": {
        "backend": "sqlite",
        "max_files_per_folder": 2000,
        "sqlite": {
            "db_path": "local/case/case.db",
        },
        "sqlserver": {
            "host": "localhost",
            "port": 1433,
            "database": "Carving",
            "user": "sa",
            "driver": "ODBC Driver 18 for SQL Server",
            "schema": "carving",
        },
    },
    "runner": {
        "max_workers": 4,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class CarverConfig:
    """
    Configuration for the carving pipeline.

    Loads a YAML configuration file on top of the built-in defaults, then
    applies environment variable overrides.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        loaded = self._load_config() if self.config_path else {}
        self.config = _merge(DEFAULT_CONFIG, loaded)
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is not None and not isinstance(config, dict):
            raise ValueError(f"Config file must contain a mapping: {self.config_path}")

        return config or {}

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        case_dir = os.environ.get("CARVER_CASE_DIR")
        if case_dir:
            case = self.config.setdefault("case", {})
            case["module_dir"] = str(Path(case_dir) / "ModuleOutput")
            case["temp_dir"] = str(Path(case_dir) / "Temp")

        executable = os.environ.get("CARVER_EXECUTABLE")
        if executable:
            self.config.setdefault("engine", {})["executable"] = executable

        timeout = os.environ.get("CARVER_TIMEOUT_SECONDS")
        if timeout:
            try:
                self.config.setdefault("engine", {})["timeout_seconds"] = float(timeout)
            except ValueError:
                logger.warning(f"Ignoring non-numeric CARVER_TIMEOUT_SECONDS: {timeout}")

        backend = os.environ.get("CARVER_DB_BACKEND")
        if backend:
            self.config.setdefault("storage", {})["backend"] = backend.lower()

        conn_str = os.environ.get("CARVER_SQLSERVER_CONN_STR")
        if conn_str:
            storage = self.config.setdefault("storage", {})
            storage.setdefault("sqlserver", {})["connection_string"] = conn_str

        password = os.environ.get("CARVER_SQLSERVER_PASSWORD")
        if password:
            storage = self.config.setdefault("storage", {})
            storage.setdefault("sqlserver", {})["password"] = password

    def get_case_config(self) -> Dict[str, Any]:
        """Get case directory configuration."""
        return self.config.get("case", {})

    def get_engine_config(self) -> Dict[str, Any]:
        """Get carving engine configuration."""
        return self.config.get("engine", {})

    def get_carver_config(self) -> Dict[str, Any]:
        """Get carver job settings."""
        return self.config.get("carver", {})

    def get_storage_config(self) -> Dict[str, Any]:
        """Get case storage configuration."""
        return self.config.get("storage", {})

    def get_runner_config(self) -> Dict[str, Any]:
        """Get runner configuration."""
        return self.config.get("runner", {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
