"""Mode capability interface and the AbstractMode base class.

A mode is an interchangeable workflow plugin (discovery, planning, build).
Every mode satisfies the Mode protocol; most concrete modes extend
AbstractMode, which provides:
- Lifecycle: initialize / execute / cleanup with execution hooks
- Durable state through a per-mode StateManager
- Configuration persisted under ``config/<mode_id>.json``
- Prompt templates loaded from ``modes/<mode_id>/prompts.json``

Usage:
    class DiscoveryMode(AbstractMode):
        default_version = "2.0.0"

        def initialize_prompts(self) -> None:
            self._prompts["welcome"] = "Tell me about {project}"

        async def do_execute(self, input, context):
            return ModeResult.ok(f"discovered: {input}")
        ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
from pathlib import Path
import time
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
import structlog

from conductor.config.models import StateConfig
from conductor.core.errors import ConfigurationError, ModeExecutionError
from conductor.modes.state.manager import StateManager
from conductor.modes.state.models import StateRecord, ValidationResult
from conductor.observability.logging import get_logger
from conductor.persistence.files import FileStore

REQUIRED_CAPABILITIES: tuple[str, ...] = (
    "initialize",
    "execute",
    "execute_with_result",
    "cleanup",
    "save_state",
    "load_state",
    "clear_state",
    "validate",
    "configure",
)


class ModeConfig(BaseModel, frozen=True):
    """Configuration of a registered mode.

    Attributes:
        version: Mode version, also the schema version of its state.
        enabled: Whether the mode may be created.
        description: Human-readable summary.
        dependencies: Identifiers of modes this mode requires.
        settings: Free-form mode settings.
        state: Per-mode override of the global state configuration.
    """

    version: str | None = None
    enabled: bool = True
    description: str = ""
    dependencies: tuple[str, ...] = ()
    settings: dict[str, Any] = Field(default_factory=dict)
    state: StateConfig | None = None


@dataclass
class ModeResult[T]:
    """Outcome of a mode execution or validation.

    Attributes:
        success: Whether the operation succeeded.
        data: Result payload on success.
        error: Failure description.
        metadata: Execution metadata (execution_time, artifacts, warnings).
    """

    success: bool
    data: T | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T | None = None, **metadata: Any) -> ModeResult[T]:
        return cls(success=True, data=data, metadata=dict(metadata))

    @classmethod
    def failure(cls, error: str, **metadata: Any) -> ModeResult[T]:
        return cls(success=False, error=error, metadata=dict(metadata))


@dataclass
class ModeContext:
    """Execution context injected into a mode by the factory."""

    project_path: Path
    workspace_state: dict[str, Any] = field(default_factory=dict)
    user_preferences: dict[str, Any] = field(default_factory=dict)
    session_data: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class Mode(Protocol):
    """Protocol every live mode instance satisfies."""

    async def initialize(self) -> None: ...

    async def execute(self, input: str) -> str: ...

    async def execute_with_result(
        self, input: str, context: dict[str, Any] | None = None
    ) -> ModeResult[Any]: ...

    async def cleanup(self) -> None: ...

    async def save_state(
        self,
        data: dict[str, Any],
        artifacts: list[str] | None = None,
        state_id: str | None = None,
    ) -> StateRecord: ...

    async def load_state(self, state_id: str | None = None) -> StateRecord | None: ...

    async def clear_state(self, state_id: str | None = None) -> int: ...

    async def validate(self) -> ModeResult[bool]: ...

    async def configure(self, **changes: Any) -> None: ...


class AbstractMode(ABC):
    """Base class implementing the Mode protocol.

    Subclasses implement the ``do_*`` methods and ``initialize_prompts``.
    They may override ``do_validate_state`` and ``do_migrate_state`` to
    add state rules, and the ``on_*`` hooks to observe execution.

    Attributes:
        default_version: Version used when the config does not set one.
        name: Display name.
    """

    default_version: str = "1.0.0"
    name: str = ""

    def __init__(
        self,
        mode_id: str,
        config: ModeConfig | None = None,
        *,
        files: FileStore,
        logger: structlog.stdlib.BoundLogger | None = None,
        state_config: StateConfig | None = None,
    ) -> None:
        """Initialize the mode.

        Args:
            mode_id: Registered identifier of the mode.
            config: Mode configuration.
            files: Persistence primitive for state, config and prompts.
            logger: Logger, usually pre-bound with mode_id by the registry.
            state_config: Global state configuration; ``config.state`` wins.
        """
        self._mode_id = mode_id
        self._config = config or ModeConfig()
        self._version = self._config.version or self.default_version
        self._files = files
        self._log = logger or get_logger(__name__).bind(mode_id=mode_id)
        self._prompts: dict[str, str] = {}
        self._initialized = False
        self._context: ModeContext | None = None
        self.state = StateManager(
            mode_id,
            self._version,
            files,
            config=self._config.state or state_config,
            validator=self.do_validate_state,
            migrator=self.do_migrate_state,
        )
        self.initialize_prompts()

    @property
    def mode_id(self) -> str:
        return self._mode_id

    @property
    def version(self) -> str:
        return self._version

    @property
    def config(self) -> ModeConfig:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def context(self) -> ModeContext | None:
        return self._context

    @property
    def prompts_path(self) -> str:
        return f"modes/{self._mode_id}/prompts.json"

    @property
    def config_path(self) -> str:
        return f"config/{self._mode_id}.json"

    def attach_context(self, context: ModeContext) -> None:
        """Inject the execution context."""
        self._context = context

    async def initialize(self) -> None:
        """Initialize the mode. Idempotent."""
        if self._initialized:
            self._log.debug("mode.initialize.skipped", reason="already initialized")
            return

        self._log.info("mode.initializing", version=self._version)
        await self._load_stored_prompts()
        await self.do_initialize()
        self._initialized = True
        self._log.info("mode.initialized")

    async def _load_stored_prompts(self) -> None:
        if not await self._files.exists(self.prompts_path):
            return
        try:
            stored = json.loads(await self._files.read_file(self.prompts_path))
        except (OSError, json.JSONDecodeError) as e:
            self._log.warning("mode.prompts.load_failed", path=self.prompts_path, error=str(e))
            return

        if not isinstance(stored, dict):
            self._log.warning("mode.prompts.invalid", path=self.prompts_path)
            return
        self._prompts.update({str(k): str(v) for k, v in stored.items()})
        self._log.debug("mode.prompts.loaded", count=len(stored))

    async def execute(self, input: str) -> str:
        """Execute the mode and return its string output.

        Raises:
            ModeExecutionError: If execution failed.
        """
        result = await self.execute_with_result(input)
        if not result.success:
            raise ModeExecutionError(
                result.error or "Mode execution failed", mode_id=self._mode_id
            )
        return "" if result.data is None else str(result.data)

    async def execute_with_result(
        self, input: str, context: dict[str, Any] | None = None
    ) -> ModeResult[Any]:
        """Execute the mode, running hooks and recording execution time.

        Exceptions raised by the mode are reported as a failed result after
        the ``on_error`` hook has seen them.
        """
        if not self._initialized:
            await self.initialize()

        started = time.monotonic()
        self._log.debug("mode.execute.started", input_preview=input[:100])
        try:
            await self.on_before_execute(context)
            result = await self.do_execute(input, context)
            result.metadata = {
                **result.metadata,
                "execution_time": time.monotonic() - started,
            }
            await self.on_after_execute(result)
        except Exception as e:
            self._log.error("mode.execute.failed", error=str(e), error_type=type(e).__name__)
            await self.on_error(e)
            return ModeResult.failure(str(e), execution_time=time.monotonic() - started)

        self._log.debug(
            "mode.execute.completed",
            success=result.success,
            execution_time=result.metadata["execution_time"],
        )
        return result

    async def save_state(
        self,
        data: dict[str, Any],
        artifacts: list[str] | None = None,
        state_id: str | None = None,
    ) -> StateRecord:
        return await self.state.save(data, artifacts, state_id)

    async def load_state(self, state_id: str | None = None) -> StateRecord | None:
        return await self.state.load(state_id)

    async def clear_state(self, state_id: str | None = None) -> int:
        return await self.state.clear(state_id)

    async def configure(self, **changes: Any) -> None:
        """Merge configuration changes and persist the result.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        try:
            self._config = ModeConfig.model_validate({**self._config.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration for mode '{self._mode_id}': {e}",
                config_key=self._mode_id,
                details={"changes": sorted(changes)},
            ) from e

        await self._files.write_file(self.config_path, self._config.model_dump_json(indent=2))
        self._log.debug("mode.configured", keys=sorted(changes))

    async def validate(self) -> ModeResult[bool]:
        """Validate the mode. Never raises."""
        if not self._config.enabled:
            return ModeResult.failure(f"Mode {self._mode_id} is disabled")
        try:
            return await self.do_validate()
        except Exception as e:
            return ModeResult.failure(str(e))

    async def cleanup(self) -> None:
        """Release resources and reset to the uninitialized state."""
        self._log.info("mode.cleanup.started")
        await self.do_cleanup()
        self._prompts.clear()
        self._initialized = False
        self._log.info("mode.cleanup.completed")

    def get_prompts(self) -> dict[str, str]:
        return dict(self._prompts)

    def update_prompt(self, key: str, template: str) -> None:
        self._prompts[key] = template
        self._log.debug("mode.prompt.updated", key=key)

    async def save_prompts(self) -> None:
        """Persist the current prompt templates."""
        await self._files.write_file(
            self.prompts_path, json.dumps(self._prompts, indent=2, ensure_ascii=False)
        )

    # Hooks, no-ops by default

    async def on_before_execute(self, context: dict[str, Any] | None) -> None:
        pass

    async def on_after_execute(self, result: ModeResult[Any]) -> None:
        pass

    async def on_error(self, error: Exception) -> None:
        pass

    def do_validate_state(self, record: StateRecord) -> ValidationResult:
        """Mode-specific state validation. Accepts everything by default."""
        return ValidationResult.build(
            current_version=record.schema_version,
            target_version=self._version,
        )

    async def do_migrate_state(self, record: StateRecord) -> StateRecord:
        """Mode-specific state migration. Identity by default.

        Receives the record stamped with its source version and returns
        the migrated record; the version and checksum are re-stamped after.
        """
        return record

    @abstractmethod
    async def do_initialize(self) -> None: ...

    @abstractmethod
    async def do_execute(
        self, input: str, context: dict[str, Any] | None
    ) -> ModeResult[Any]: ...

    @abstractmethod
    async def do_validate(self) -> ModeResult[bool]: ...

    @abstractmethod
    async def do_cleanup(self) -> None: ...

    @abstractmethod
    def initialize_prompts(self) -> None: ...
