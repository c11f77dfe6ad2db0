"""Configuration loader for Moodle connection and editor settings."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from .models import EditorConfig

# Environment variables that fill values missing from the config file
ENV_OVERRIDES = {
    "url": "MOODLE_URL",
    "sesskey": "MOODLE_SESSKEY",
    "session_cookie": "MOODLE_SESSION",
}


class ConfigLoader:
    """Loads and validates configuration files."""

    def __init__(self, config_dir: Path | None = None, env_file: Path | None = None):
        """Initialize the config loader.

        Args:
            config_dir: Directory relative config paths are resolved against.
                Defaults to the current directory.
            env_file: .env file loaded before reading the environment.
                Defaults to the nearest .env from the working directory up.
        """
        self.config_dir = config_dir or Path.cwd()
        self.env_file = env_file

    def load(self, config_file: str | Path | None = None) -> EditorConfig:
        """Load the editor configuration.

        Args:
            config_file: Path to the YAML file. When omitted, only the
                environment is used.

        Returns:
            Parsed EditorConfig object

        Raises:
            FileNotFoundError: If the config file does not exist
            ValueError: If the Moodle URL or session key is missing
        """
        load_dotenv(self.env_file or find_dotenv(usecwd=True))

        data: dict[str, Any] = {}
        if config_file is not None:
            data = self._load_yaml(self._resolve_path(config_file)) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {config_file}")

        moodle = dict(data.get("moodle") or {})
        for key, env_var in ENV_OVERRIDES.items():
            if not moodle.get(key) and os.environ.get(env_var):
                moodle[key] = os.environ[env_var]

        if not moodle.get("url"):
            raise ValueError("Moodle URL required. Set moodle.url or MOODLE_URL.")
        if not moodle.get("sesskey"):
            raise ValueError("Moodle session key required. Set moodle.sesskey or MOODLE_SESSKEY.")

        data["moodle"] = moodle
        return EditorConfig.from_dict(data)

    def _resolve_path(self, file_path: str | Path) -> Path:
        """Resolve a config file path."""
        path = Path(file_path)
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    def _load_yaml(self, path: Path) -> Any:
        """Load and parse a YAML file."""
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
