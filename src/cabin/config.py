"""Settings loaded from ``~/.cabin/settings.json``.

``CABIN_CONFIG_DIR`` overrides the directory.  Keys are camelCase in the
file and snake_case on :class:`Settings`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".cabin"
SETTINGS_FILE = "settings.json"


@dataclass
class Settings:
    log_file: str | None = None
    log_level: str = "warning"
    window_limit: int = 50
    history_days: int = 14
    nick: str | None = None
    cabals: list[str] = field(default_factory=list)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def get_config_dir() -> Path:
    return Path(os.environ.get("CABIN_CONFIG_DIR", Path.home() / CONFIG_DIR_NAME))


def get_settings_path() -> Path:
    return get_config_dir() / SETTINGS_FILE


def settings_from_dict(data: dict[str, Any]) -> Settings:
    defaults = Settings()
    values: dict[str, Any] = {}
    for f in fields(Settings):
        key = _camel(f.name)
        if key not in data:
            continue
        value = data[key]
        expected = type(getattr(defaults, f.name))
        if f.name in ("log_file", "nick"):
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
        elif f.name == "cabals":
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"{key} must be a list of strings")
        elif not isinstance(value, expected) or isinstance(value, bool):
            raise ValueError(f"{key} must be {expected.__name__}")
        values[f.name] = value
    return Settings(**values)


def load_settings(path: Path | None = None) -> Settings:
    """Read settings, falling back to defaults when the file is missing or bad."""
    path = path or get_settings_path()
    if not path.exists():
        return Settings()
    try:
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return settings_from_dict(data)
    except (OSError, ValueError) as e:
        logger.warning("ignoring settings file %s: %s", path, e)
        return Settings()
