"""
Configuration models and loading.

Pydantic models for beads-bridge configuration with multi-layer merging:
defaults < user < project < env vars.
"""

from .env import load_layered_env
from .loader import (
    deep_merge,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import (
    BeadsConfig,
    BridgeConfig,
    DiagramsConfig,
    GitHubConfig,
    LoggingConfig,
    MappingsConfig,
    ShortcutConfig,
    SyncConfig,
)

__all__ = [
    # Models
    "BeadsConfig",
    "BridgeConfig",
    "DiagramsConfig",
    "GitHubConfig",
    "LoggingConfig",
    "MappingsConfig",
    "ShortcutConfig",
    "SyncConfig",
    # Loader functions
    "deep_merge",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "load_layered_env",
]
