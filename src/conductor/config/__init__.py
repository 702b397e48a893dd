"""Configuration module for Conductor.

Configuration lives in the project-local ``.conductor/config.yaml``.

Usage:
    from conductor.config import load_config

    config = load_config()
    threshold = config.state.compression_threshold
"""

from conductor.config.loader import create_default_config, load_config
from conductor.config.models import (
    ConductorConfig,
    RegistryConfig,
    StateConfig,
    get_default_config,
    get_project_dir,
)

__all__ = [
    "ConductorConfig",
    "RegistryConfig",
    "StateConfig",
    "create_default_config",
    "get_default_config",
    "get_project_dir",
    "load_config",
]
