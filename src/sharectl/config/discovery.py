"""Config file discovery and loading.

Walk-up finder locates sharectl.toml, similar to how git finds .git/.
Supports the SHARECTL_CONFIG env var and the --config CLI flag.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from sharectl.config.models import SharectlConfig

CONFIG_FILENAME = "sharectl.toml"
CONFIG_ENV_VAR = "SHARECTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for sharectl.toml.

    SHARECTL_CONFIG wins when set; a dangling env path means no config.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def load_config(path: Path | None = None, cwd: Path | None = None) -> SharectlConfig:
    """Load and validate config from a TOML file.

    Falls back to :func:`find_config` when *path* is None and to the
    code defaults when nothing is found.
    """
    if path is None:
        path = find_config(cwd)
    if path is None:
        return SharectlConfig()

    data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
    return SharectlConfig.model_validate(data)
