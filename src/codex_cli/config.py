#!/usr/bin/env python3
"""Config - Data directory resolution and user settings.

Settings live in ``config.json`` inside the data directory.
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from .errors import InvalidShapeError
from .filestore import DIR_MODE, atomic_write

DATA_DIR_ENV = "CODEX_DATA_DIR"
DEFAULT_DATA_DIR = Path.home() / ".codexcli"

ENTRIES_FILE = "entries.json"
ALIASES_FILE = "aliases.json"
CONFIRM_FILE = "confirm.json"
CONFIG_FILE = "config.json"
CHANGELOG_FILE = "changes.log"
BACKUP_DIR = ".backups"


@dataclass
class Config:
    """User settings."""

    colors: bool = True
    theme: str = "default"
    pretty: bool = True  # Indent saved JSON by 2 spaces; compact otherwise


def get_data_dir(override=None) -> Path:
    """Get data directory from argument, environment or default."""
    if override:
        return Path(override)
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return DEFAULT_DATA_DIR


def ensure_data_dir(data_dir: Path) -> Path:
    data_dir.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
    return data_dir


def load_config(data_dir: Optional[Path] = None) -> Config:
    """Load settings; defaults apply until a setting is first changed.

    Keys missing from an older config file fall back to their defaults.
    """
    path = get_data_dir(data_dir) / CONFIG_FILE
    if not path.exists():
        return Config()

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidShapeError(f"Invalid configuration file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise InvalidShapeError(f"Invalid configuration file {path}: not a JSON object")

    known = {f.name for f in fields(Config)}
    return Config(**{k: v for k, v in raw.items() if k in known})


def save_config(config: Config, data_dir: Optional[Path] = None) -> None:
    directory = ensure_data_dir(get_data_dir(data_dir))
    atomic_write(directory / CONFIG_FILE, json.dumps(asdict(config), indent=2) + "\n")


def get_setting(key: str, data_dir: Optional[Path] = None) -> Any:
    """Get one setting.

    Raises:
        KeyError: If key is not a known setting
    """
    config = load_config(data_dir)
    if key not in asdict(config):
        raise KeyError(f"Unknown configuration key: {key}")
    return getattr(config, key)


def set_setting(key: str, value: Any, data_dir: Optional[Path] = None) -> Config:
    """Set one setting, coercing "true"/"false" strings for boolean keys.

    Raises:
        KeyError: If key is not a known setting
        ValueError: If a boolean setting gets a non-boolean value
    """
    config = load_config(data_dir)
    current = asdict(config)
    if key not in current:
        raise KeyError(f"Unknown configuration key: {key}")

    if isinstance(current[key], bool) and not isinstance(value, bool):
        lowered = str(value).strip().lower()
        if lowered not in ("true", "false"):
            raise ValueError(f"Setting '{key}' must be true or false")
        value = lowered == "true"

    setattr(config, key, value)
    save_config(config, data_dir)
    return config
