"""Configuration loading for Conductor.

Functions:
    load_config: Load configuration from .conductor/config.yaml
    create_default_config: Write a default config.yaml
"""

from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
import yaml

from conductor.config.models import ConductorConfig, get_default_config, get_project_dir
from conductor.core.errors import ConfigurationError

CONFIG_FILE_NAME = "config.yaml"


def _model_to_yaml_dict(model: ConductorConfig) -> dict[str, Any]:
    """Convert a config model to a YAML-safe dict."""
    return model.model_dump(mode="json")


def create_default_config(project_dir: Path | None = None, *, overwrite: bool = False) -> Path:
    """Create a default configuration file.

    Args:
        project_dir: Directory that receives config.yaml. Defaults to ./.conductor/.
        overwrite: Replace an existing file.

    Returns:
        Path to the configuration file.
    """
    project_dir = project_dir or get_project_dir()
    project_dir.mkdir(parents=True, exist_ok=True)
    config_path = project_dir / CONFIG_FILE_NAME

    if config_path.exists() and not overwrite:
        return config_path

    with config_path.open("w", encoding="utf-8") as f:
        yaml.dump(
            _model_to_yaml_dict(get_default_config()),
            f,
            default_flow_style=False,
            sort_keys=False,
        )
    return config_path


def load_config(config_path: Path | None = None) -> ConductorConfig:
    """Load configuration from a YAML file.

    A missing file is not an error: defaults are returned, since every
    setting has a sensible default.

    Args:
        config_path: Path to config file. Defaults to ./.conductor/config.yaml.

    Returns:
        Validated ConductorConfig instance.

    Raises:
        ConfigurationError: If the file is malformed or fails validation.
    """
    if config_path is None:
        config_path = get_project_dir() / CONFIG_FILE_NAME

    if not config_path.exists():
        return get_default_config()

    try:
        with config_path.open(encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse configuration file: {e}",
            config_file=str(config_path),
            details={"yaml_error": str(e)},
        ) from e

    if config_dict is None:
        config_dict = {}

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration root must be a mapping",
            config_file=str(config_path),
        )

    try:
        return ConductorConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            error_messages.append(f"  - {loc}: {error['msg']}")

        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(error_messages),
            config_file=str(config_path),
            details={"validation_errors": [str(err["msg"]) for err in e.errors()]},
        ) from e
