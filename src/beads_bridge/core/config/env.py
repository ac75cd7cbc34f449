"""
Layered .env loading.

Credentials such as SHORTCUT_API_TOKEN and GH_TOKEN, and any BEADS_BRIDGE_*
override, may come from .env files as well as the shell. Precedence, highest
first: the shell environment, the project's .env files, the user's
$XDG_CONFIG_HOME/beads-bridge/.env.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values


def _user_env_files() -> list[Path]:
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return [Path(config_home) / "beads-bridge" / ".env"]


def _merged_values(paths: Iterable[Path]) -> dict[str, str]:
    """Values from every existing file in order; later files win."""
    merged: dict[str, str] = {}
    for path in map(Path, paths):
        if not path.is_file():
            continue
        merged.update(
            {name: value for name, value in dotenv_values(path).items() if value is not None}
        )
    return merged


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> set[str]:
    """
    Export variables from the user and project .env files.

    Variables already present in ``os.environ`` are left alone.

    Args:
        project_dir: Where ``.env`` and ``.env.local`` are looked up (default: cwd)
        user_env_paths: Override the user-level files
        project_env_paths: Override the project-level files

    Returns:
        Names of the variables this call exported
    """
    project_dir = project_dir or Path.cwd()
    if user_env_paths is None:
        user_env_paths = _user_env_files()
    if project_env_paths is None:
        project_env_paths = [project_dir / ".env", project_dir / ".env.local"]

    values = _merged_values([*user_env_paths, *project_env_paths])
    exported = {name for name in values if name not in os.environ}
    for name in exported:
        os.environ[name] = values[name]
    return exported
