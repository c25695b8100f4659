"""Configuration paths and constants for sasswatch."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("SASSWATCH_HOME", str(Path.home() / ".sasswatch"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

SASS_EXTENSIONS = ("scss", "sass")
OUTPUT_STYLES = ("expanded", "compressed", "nested", "compact")

SKIP_DIRS = {
    ".git", ".hg", ".svn", "node_modules", ".sass-cache",
    "__pycache__", ".venv", "venv", ".tox",
}

# Default watcher coalescing window in seconds (0 disables it)
DEFAULT_DEBOUNCE = 0.05
