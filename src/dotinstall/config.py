from __future__ import annotations

import copy
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml

from .errors import ParseError

if TYPE_CHECKING:
    from .system import Environment

CONFIG_FILENAMES = [".dotinstall.yaml", ".dotinstall.yml"]


class Config:
    """User settings for dotinstall, read from ``~/.dotinstall.yaml``.

    String values may use ``{home}`` and ``{user}`` placeholders.
    """

    DEFAULT_CONFIG = {
        "manifest": "{home}/.dotfiles/install/manifests",
        "profile": "dev",
        "platform": None,
        "log_dir": "{home}/.dotinstall-logs",
        "timeout": 300,
        "jobs": 1,
        "sources_dir": "/etc/apt/sources.list.d",
    }

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env: Optional[Environment] = None,
    ):
        # Use deepcopy to avoid mutating the class-level DEFAULT_CONFIG
        self.data = copy.deepcopy(self.DEFAULT_CONFIG)
        self.env = env
        self.path = config_path

        if config_path and config_path.exists():
            with open(config_path, "r") as f:
                try:
                    user_config = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ParseError(f"Invalid YAML in {config_path}: {e}") from e
            if user_config:
                if not isinstance(user_config, dict):
                    raise ParseError(f"Config {config_path} must be a mapping")
                self._deep_update(self.data, user_config)

        self._apply_replacements(self.data)

    @classmethod
    def find(cls, home: Path, env: Optional[Environment] = None) -> "Config":
        """Load the first existing config file in ``home``."""
        for filename in CONFIG_FILENAMES:
            path = home / filename
            if path.exists():
                return cls(path, env=env)
        return cls(None, env=env)

    def _deep_update(self, base: Dict, update: Dict):
        for k, v in update.items():
            if isinstance(v, dict) and k in base and isinstance(base[k], dict):
                self._deep_update(base[k], v)
            else:
                base[k] = v

    def _apply_replacements(self, data: Dict[str, Any]):
        replacements = {
            "home": str(self.env.home if self.env else Path.home()),
            "user": self.env.user if self.env else "user",
        }
        for k, v in data.items():
            if isinstance(v, dict):
                self._apply_replacements(v)
            elif isinstance(v, str):
                try:
                    data[k] = v.format(**replacements)
                except (KeyError, IndexError, ValueError):
                    pass

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a config value by dot-separated path."""
        keys = key_path.split(".")
        value = self.data
        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_path(self, key: str) -> Optional[Path]:
        value = self.get(key)
        if not value:
            return None
        return Path(str(value)).expanduser()

    @property
    def timeout(self) -> int:
        return int(self.get("timeout", 300))

    @property
    def jobs(self) -> int:
        return max(1, int(self.get("jobs", 1)))
