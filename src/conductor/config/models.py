"""Pydantic models for Conductor configuration.

This module defines the configuration schema using Pydantic v2.
All configuration validation happens through these models.

Classes:
    StateConfig: Durable state engine tuning (compression, backups, retries)
    RegistryConfig: Mode registry defaults and plugin discovery
    ConductorConfig: Top-level configuration combining all sections
"""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from conductor.observability.logging import LoggingConfig

PROJECT_DIR_NAME = ".conductor"


class StateConfig(BaseModel, frozen=True):
    """Configuration for per-mode state persistence.

    Attributes:
        compression_enabled: Whether large payloads are compressed.
        compression_threshold: Serialized data size in bytes above which the
            payload is compressed.
        backup_enabled: Whether the previous record is kept as a backup.
        max_write_attempts: Total write attempts before a save fails.
        retry_wait_initial: First backoff delay in seconds.
        retry_wait_max: Upper bound for a single backoff delay in seconds.
        state_dir: Directory (relative to the project root) holding state.
    """

    compression_enabled: bool = True
    compression_threshold: int = Field(default=10_000, ge=0)
    backup_enabled: bool = True
    max_write_attempts: int = Field(default=3, ge=1, le=10)
    retry_wait_initial: float = Field(default=0.1, ge=0.0)
    retry_wait_max: float = Field(default=1.0, ge=0.0)
    state_dir: str = Field(default="state", min_length=1)

    @model_validator(mode="after")
    def validate_retry_window(self) -> "StateConfig":
        """Validate that the initial backoff does not exceed the maximum."""
        if self.retry_wait_initial > self.retry_wait_max:
            msg = (
                f"retry_wait_initial ({self.retry_wait_initial}) must be <= "
                f"retry_wait_max ({self.retry_wait_max})"
            )
            raise ValueError(msg)
        return self


class RegistryConfig(BaseModel, frozen=True):
    """Configuration for the mode registry.

    Attributes:
        entry_point_group: Entry-point group scanned by ModeRegistry.discover().
        default_load_priority: Priority given to discovered descriptors that
            do not declare one.
    """

    entry_point_group: str = "conductor.modes"
    default_load_priority: int = Field(default=50, ge=0, le=100)


class ConductorConfig(BaseModel, frozen=True):
    """Top-level Conductor configuration.

    Attributes:
        state: State engine configuration.
        registry: Registry configuration.
        logging: Logging configuration.
    """

    state: StateConfig = Field(default_factory=StateConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_project_dir(base_path: Path | None = None) -> Path:
    """Get the project-local Conductor directory.

    Args:
        base_path: Project root. Defaults to the current working directory.

    Returns:
        Path to <base_path>/.conductor/
    """
    return (base_path or Path.cwd()) / PROJECT_DIR_NAME


def get_default_config() -> ConductorConfig:
    """Get the default Conductor configuration."""
    return ConductorConfig()
