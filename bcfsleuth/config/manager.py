from __future__ import annotations

"""Configuration loading and access helpers.

Loads the YAML files packaged with *bcfsleuth* and merges them with user
overrides located in the per-user configuration directory.

On Windows: ``%LOCALAPPDATA%\\BcfSleuth\\config\\*.yml``
On Unix: ``~/.bcfsleuth/*.yml``

Only ambient settings live here (logging, parser execution options). The
alias tables and allow-lists that define how archives are read are code
constants in :mod:`bcfsleuth.core.fields`.
"""

import logging
import os
from importlib import resources
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

__all__ = ["ConfigManager"]


def _get_user_config_dir() -> Path:
    """Get the user configuration directory."""
    if os.name == 'nt':  # Windows
        local_appdata = os.environ.get('LOCALAPPDATA')
        if local_appdata:
            return Path(local_appdata) / "BcfSleuth" / "config"
        return Path.home() / "AppData" / "Local" / "BcfSleuth" / "config"
    return Path.home() / ".bcfsleuth"


def _read_packaged(filename: str) -> str:
    return resources.files(__package__).joinpath(filename).read_text(encoding="utf-8")


class _Singleton(type):
    _instance: "ConfigManager" | None = None

    def __call__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__call__(*args, **kwargs)
        return cls._instance

    def reset(cls) -> None:
        """Drop the cached instance (tests and long-running hosts reload config)."""
        cls._instance = None


class ConfigManager(metaclass=_Singleton):
    """Lazy-loads and exposes configuration sections as dictionaries."""

    _DEFAULT_FILENAMES = {
        "logging": "logging.yml",
        "parser": "parser.yml",
    }

    def __init__(self, user_config_dir: Path | None = None) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._user_config_dir = user_config_dir or _get_user_config_dir()
        self._ensure_loaded()

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def get_logging_config(self) -> Dict[str, Any]:
        return self._data.get("logging", {})

    def get_parser_config(self) -> Dict[str, Any]:
        return self._data.get("parser", {})

    def get_parser_option(self, key: str, default: Any = None) -> Any:
        return self.get_parser_config().get(key, default)

    # ------------------------------------------------------------------
    # Internal loading logic
    # ------------------------------------------------------------------
    def _ensure_loaded(self) -> None:
        if self._data:
            return  # already loaded

        startup_summary = []

        for key, filename in self._DEFAULT_FILENAMES.items():
            merged_cfg: Dict[str, Any] = {}
            status = "missing"

            # 1. load packaged default
            try:
                packaged_data = yaml.safe_load(_read_packaged(filename)) or {}
                merged_cfg.update(packaged_data)
                status = "loaded"
            except (FileNotFoundError, OSError):
                logger.error("Missing packaged config for %s (%s)", key, filename)
            except yaml.YAMLError as exc:
                logger.error("Invalid packaged config for %s (%s): %s", key, filename, exc)
                status = "invalid"

            # 2. load user overrides
            user_path = self._user_config_dir / filename
            if user_path.exists():
                try:
                    user_data = yaml.safe_load(user_path.read_text(encoding="utf-8")) or {}
                    merged_cfg.update(user_data)
                    if status == "loaded":
                        status = "loaded+overrides"
                except (OSError, yaml.YAMLError) as exc:
                    logger.error("Could not parse user config %s: %s", user_path, exc)

            self._data[key] = merged_cfg
            startup_summary.append(f"{key}: {status}")

        logger.debug("Config startup: %s", " | ".join(startup_summary))
