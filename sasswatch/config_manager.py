"""TOML configuration for render and watch defaults."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "render": {
        "output_style": "expanded",
        "include_paths": [],
        "source_map": False,
        "sass_binary": "sass",
    },
    "watch": {
        "recursive": True,
        "debounce": config.DEFAULT_DEBOUNCE,
    },
}


def _config_file(path: Optional[Path] = None) -> Path:
    return path or config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the raw TOML file (all sections), or ``{}`` if it is absent or broken."""
    config_file = _config_file(path)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_file, exc)
        return {}


def load_config(path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """Load configuration merged over :data:`DEFAULT_CONFIG`.

    Unknown keys inside known sections are kept; unknown sections are ignored.
    """
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in load_full_config(path).items():
        if section in merged and isinstance(values, dict):
            merged[section].update(values)
    return merged


def _save_full_config(data: Dict[str, Any], path: Optional[Path] = None) -> bool:
    config_file = _config_file(path)
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", config_file, exc)
        return False


def _coerce(section: str, key: str, raw: str) -> Any:
    default = DEFAULT_CONFIG[section][key]
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"Expected a boolean for {section}.{key}, got '{raw}'")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def set_value(dotted_key: str, raw: str, path: Optional[Path] = None) -> Any:
    """Set ``section.key`` from a string and persist it. Returns the stored value."""
    section, _, key = dotted_key.partition(".")
    if section not in DEFAULT_CONFIG or key not in DEFAULT_CONFIG[section]:
        raise KeyError(dotted_key)
    value = _coerce(section, key, raw)
    if section == "render" and key == "output_style" and value not in config.OUTPUT_STYLES:
        raise ValueError(f"Unknown output style '{value}'")

    data = load_full_config(path)
    data.setdefault(section, {})[key] = value
    if not _save_full_config(data, path):
        raise OSError(f"Could not write {_config_file(path)}")
    return value


def reset_config(path: Optional[Path] = None) -> bool:
    """Remove the config file, falling back to defaults."""
    config_file = _config_file(path)
    if config_file.exists():
        config_file.unlink()
        return True
    return False
