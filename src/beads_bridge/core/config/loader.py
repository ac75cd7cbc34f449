"""
Load BridgeConfig from layered sources.

Later layers win: built-in defaults, then the user file
($XDG_CONFIG_HOME/beads-bridge/config.json), then the project file
(.beads-bridge/config.json), then environment variables.

There is no module-level cache. Each call returns a new BridgeConfig.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import BridgeConfig

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = ".beads-bridge/config.json"

# env var -> (section, key); values must parse as integers >= 1
_INT_OVERRIDES = {
    "BEADS_BRIDGE_MAX_CONCURRENCY": ("sync", "max_concurrency"),
    "BEADS_BRIDGE_MAX_NODES": ("diagrams", "max_nodes"),
}

# env var -> (section, key); values are taken verbatim
_STR_OVERRIDES = {
    "BEADS_BRIDGE_GITHUB_REPOSITORY": ("github", "repository"),
    "BEADS_BRIDGE_SHORTCUT_WORKSPACE": ("shortcut", "workspace"),
    "BEADS_BRIDGE_STORAGE_PATH": ("mappings", "storage_path"),
}


def get_xdg_config_home() -> Path:
    """$XDG_CONFIG_HOME, or ~/.config when unset."""
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    return get_xdg_config_home() / "beads-bridge" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """The project config file under ``cwd`` (default: current directory)."""
    return (cwd or Path.cwd()) / PROJECT_CONFIG_FILE


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Return ``base`` updated with ``override``, recursing into nested dicts.

    Neither argument is modified.

    Example:
        >>> deep_merge({"sync": {"max_concurrency": 3}}, {"sync": {"dry_run": True}})
        {'sync': {'max_concurrency': 3, 'dry_run': True}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Read a JSON object from ``path``.

    A missing file gives None. So does an unreadable or malformed one, or
    one whose top level is not an object; those cases also log a warning.
    """
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected a JSON object", path)
        return None
    return data


def _parse_bool(value: str) -> bool:
    return value.strip().lower() not in ("false", "0", "no", "off", "")


def _positive_int(name: str, raw: str) -> int | None:
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None
    if value < 1:
        logger.warning("Ignoring %s=%d: must be at least 1", name, value)
        return None
    return value


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay environment variables on a config dict and return the copy.

    Besides the BEADS_BRIDGE_* names in the override tables, this reads:
        BEADS_BRIDGE_SHORTCUT_TOKEN, falling back to SHORTCUT_API_TOKEN
        BEADS_BRIDGE_AUTO_COMMIT (false/0/no/off disable it)
        BEADS_BRIDGE_LOG_LEVEL (lower-cased)

    Invalid integer values are logged and skipped.
    """
    result = copy.deepcopy(config_dict)

    def put(section: str, key: str, value: Any) -> None:
        result.setdefault(section, {})[key] = value

    for name, (section, key) in _STR_OVERRIDES.items():
        if raw := os.environ.get(name):
            put(section, key, raw)

    if token := os.environ.get("BEADS_BRIDGE_SHORTCUT_TOKEN") or os.environ.get(
        "SHORTCUT_API_TOKEN"
    ):
        put("shortcut", "api_token", token)

    if raw := os.environ.get("BEADS_BRIDGE_AUTO_COMMIT"):
        put("mappings", "auto_commit", _parse_bool(raw))

    for name, (section, key) in _INT_OVERRIDES.items():
        raw = os.environ.get(name)
        if raw and (value := _positive_int(name, raw)) is not None:
            put(section, key, value)

    if level := os.environ.get("BEADS_BRIDGE_LOG_LEVEL"):
        put("logging", "level", level.lower())

    return result


def get_default_config() -> dict[str, Any]:
    """
    Baseline settings merged under every file layer.

    Field defaults on the models cover everything else.
    """
    return {
        "mappings": {"storage_path": ".beads-bridge", "max_history_entries": 50},
        "sync": {"since_ref": "HEAD~1", "max_concurrency": 3},
        "logging": {"level": "info"},
    }


def load_config(project_dir: Path | None = None) -> BridgeConfig:
    """
    Build the effective configuration for a project.

    Args:
        project_dir: Project root holding .beads-bridge/ (default: cwd)

    Raises:
        pydantic.ValidationError: If the merged values are invalid

    Example:
        >>> load_config(Path("/srv/app")).sync.since_ref
        'HEAD~1'
    """
    merged = get_default_config()
    for path in (get_user_config_path(), get_project_config_path(project_dir)):
        layer = load_json_file(path)
        if layer:
            logger.debug("Merging config layer %s", path)
            merged = deep_merge(merged, layer)

    return BridgeConfig(**apply_env_overrides(merged))
