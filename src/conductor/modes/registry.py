"""Mode Registry - descriptor table and live instance lifecycle.

This module provides the registry that:
- Validates and stores mode descriptors (explicitly or via entry points)
- Answers availability and dependency questions about registered modes
- Constructs live instances, injecting the file store, logger and state config
- Tears instances down, in the background when removal must not block

The registry is an explicit object with initialize()/shutdown(); there is
no module-level singleton. At most one live instance exists per identifier
and the instance table never holds a disabled or unregistered identifier.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from importlib.metadata import entry_points
import inspect
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from conductor.config.models import RegistryConfig, StateConfig
from conductor.core.errors import (
    ConductorError,
    ConfigurationError,
    ModeLifecycleError,
    NotAvailableError,
)
from conductor.core.types import Result
from conductor.modes.base import REQUIRED_CAPABILITIES, Mode, ModeConfig, ModeContext
from conductor.modes.dependencies import DependencyGraph
from conductor.observability.logging import get_logger
from conductor.persistence.files import FileStore

log = get_logger(__name__)

MIN_LOAD_PRIORITY = 0
MAX_LOAD_PRIORITY = 100
UNCATEGORIZED = "uncategorized"

ModeConstructor = Callable[..., Mode]


@dataclass(frozen=True)
class ModeMetadata:
    """Descriptive metadata for a registered mode.

    Attributes:
        author: Mode author.
        category: Grouping used in registry statistics.
        tags: Free-form tags.
        min_version: Minimum host version supported.
        max_version: Maximum host version supported.
    """

    author: str = ""
    category: str | None = None
    tags: tuple[str, ...] = ()
    min_version: str | None = None
    max_version: str | None = None


@dataclass
class ModeDescriptor:
    """Registration record for a mode.

    Attributes:
        constructor: Class or factory called as
            ``constructor(mode_id, config, files=..., logger=..., state_config=...)``.
        config: Mode configuration (version, enabled, dependencies, settings).
        load_priority: Ordering weight in [0, 100], higher first. None takes
            the registry default.
        metadata: Optional descriptive metadata.
        mode_id: Registered identifier, set by the registry.
    """

    constructor: ModeConstructor
    config: ModeConfig = field(default_factory=ModeConfig)
    load_priority: int | None = None
    metadata: ModeMetadata | None = None
    mode_id: str = ""


@dataclass(frozen=True, slots=True)
class RegistryStats:
    """Snapshot of registry contents."""

    total_modes: int
    enabled_modes: int
    active_instances: int
    categories: dict[str, int]


@dataclass(frozen=True, slots=True)
class TeardownReport:
    """Outcome of tearing down several instances.

    Attributes:
        destroyed: Identifiers whose cleanup succeeded.
        failures: Identifier to failure reason for cleanups that raised.
    """

    destroyed: tuple[str, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class ModeRegistry:
    """Registry of mode descriptors and their live instances.

    Example:
        registry = ModeRegistry(FileOperations(".conductor"))
        await registry.initialize()
        registry.register("discovery", ModeDescriptor(DiscoveryMode))
        mode = await registry.create("discovery")
    """

    def __init__(
        self,
        files: FileStore,
        *,
        config: RegistryConfig | None = None,
        state_config: StateConfig | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            files: File store injected into every mode instance.
            config: Registry configuration.
            state_config: Global state configuration passed to modes.
        """
        self._files = files
        self._config = config or RegistryConfig()
        self._state_config = state_config or StateConfig()
        self._descriptors: dict[str, ModeDescriptor] = {}
        self._instances: dict[str, Mode] = {}
        self._pending_cleanups: set[asyncio.Task[None]] = set()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def files(self) -> FileStore:
        return self._files

    async def initialize(self) -> None:
        """Initialize the registry. Idempotent."""
        if self._initialized:
            log.debug("registry.initialize.skipped", reason="already initialized")
            return
        self._initialized = True
        log.info("registry.initialized")

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise ConfigurationError(
                f"Mode registry must be initialized before {operation}",
                config_key="registry",
            )

    def _validate_descriptor(self, mode_id: str, descriptor: ModeDescriptor) -> list[str]:
        """Check a descriptor, raising on errors and returning warnings."""
        if not mode_id or not mode_id.strip():
            raise ConfigurationError("Mode identifier must be a non-empty string")

        constructor = descriptor.constructor
        if not callable(constructor):
            raise ConfigurationError(
                f"Constructor for mode '{mode_id}' is not callable",
                config_key=mode_id,
            )
        if inspect.isclass(constructor):
            absent = [
                name
                for name in REQUIRED_CAPABILITIES
                if not callable(getattr(constructor, name, None))
            ]
            if absent:
                raise ConfigurationError(
                    f"Mode class for '{mode_id}' lacks required operations: {', '.join(absent)}",
                    config_key=mode_id,
                )

        warnings: list[str] = []
        if not descriptor.config.version:
            warnings.append("mode version is not set")
        priority = descriptor.load_priority
        if priority is not None and not MIN_LOAD_PRIORITY <= priority <= MAX_LOAD_PRIORITY:
            warnings.append(
                f"load priority {priority} is outside "
                f"[{MIN_LOAD_PRIORITY}, {MAX_LOAD_PRIORITY}]"
            )
        return warnings

    def register(self, mode_id: str, descriptor: ModeDescriptor) -> None:
        """Register a mode descriptor.

        Re-registering an identifier replaces the previous descriptor.

        Raises:
            ConfigurationError: If the registry is not initialized or the
                descriptor is invalid. The table is left untouched.
        """
        self._require_initialized("registration")
        warnings = self._validate_descriptor(mode_id, descriptor)
        for warning in warnings:
            log.warning("registry.mode.descriptor_warning", mode_id=mode_id, warning=warning)

        if mode_id in self._descriptors:
            log.warning("registry.mode.overwritten", mode_id=mode_id)

        self._descriptors[mode_id] = replace(
            descriptor,
            mode_id=mode_id,
            load_priority=(
                self._config.default_load_priority
                if descriptor.load_priority is None
                else descriptor.load_priority
            ),
        )
        log.info(
            "registry.mode.registered",
            mode_id=mode_id,
            version=descriptor.config.version,
            enabled=descriptor.config.enabled,
        )

    def unregister(self, mode_id: str) -> bool:
        """Remove a mode, cleaning up its live instance in the background.

        Returns:
            True if the mode was registered.
        """
        if mode_id not in self._descriptors:
            log.warning("registry.mode.unregister_unknown", mode_id=mode_id)
            return False

        instance = self._instances.pop(mode_id, None)
        if instance is not None:
            self._schedule_cleanup(mode_id, instance)
        del self._descriptors[mode_id]
        log.info("registry.mode.unregistered", mode_id=mode_id)
        return True

    def set_enabled(self, mode_id: str, enabled: bool) -> None:
        """Enable or disable a mode.

        Disabling removes any live instance and cleans it up in the
        background. Enabling never creates an instance.

        Raises:
            NotAvailableError: If the mode is not registered.
        """
        descriptor = self._get_registered(mode_id)
        descriptor.config = descriptor.config.model_copy(update={"enabled": enabled})

        if not enabled:
            instance = self._instances.pop(mode_id, None)
            if instance is not None:
                self._schedule_cleanup(mode_id, instance)
        log.info("registry.mode.enabled_changed", mode_id=mode_id, enabled=enabled)

    async def update_config(self, mode_id: str, **changes: Any) -> ModeConfig:
        """Merge configuration changes into a descriptor and its live instance.

        Returns:
            The merged configuration.

        Raises:
            NotAvailableError: If the mode is not registered.
            ConfigurationError: If the merged configuration is invalid.
        """
        descriptor = self._get_registered(mode_id)
        try:
            merged = ModeConfig.model_validate({**descriptor.config.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration for mode '{mode_id}': {e}",
                config_key=mode_id,
            ) from e
        descriptor.config = merged

        instance = self._instances.get(mode_id)
        if instance is not None:
            if not merged.enabled:
                del self._instances[mode_id]
                self._schedule_cleanup(mode_id, instance)
            else:
                await instance.configure(**changes)

        log.info("registry.mode.config_updated", mode_id=mode_id, keys=sorted(changes))
        return merged

    def _get_registered(self, mode_id: str) -> ModeDescriptor:
        descriptor = self._descriptors.get(mode_id)
        if descriptor is None:
            raise NotAvailableError(f"Mode '{mode_id}' is not registered", mode_id=mode_id)
        return descriptor

    def is_registered(self, mode_id: str) -> bool:
        return mode_id in self._descriptors

    def is_available(self, mode_id: str) -> bool:
        """Return True if the mode is registered and enabled."""
        descriptor = self._descriptors.get(mode_id)
        return descriptor is not None and descriptor.config.enabled

    def get_descriptor(self, mode_id: str) -> ModeDescriptor | None:
        return self._descriptors.get(mode_id)

    def get_instance(self, mode_id: str) -> Mode | None:
        return self._instances.get(mode_id)

    def get_registered(self) -> list[str]:
        return list(self._descriptors)

    def get_available(self) -> list[str]:
        """Get enabled mode identifiers, highest load priority first."""
        enabled = [d for d in self._descriptors.values() if d.config.enabled]
        enabled.sort(key=lambda d: d.load_priority or 0, reverse=True)
        return [d.mode_id for d in enabled]

    def get_stats(self) -> RegistryStats:
        categories: dict[str, int] = {}
        for descriptor in self._descriptors.values():
            category = (descriptor.metadata and descriptor.metadata.category) or UNCATEGORIZED
            categories[category] = categories.get(category, 0) + 1

        return RegistryStats(
            total_modes=len(self._descriptors),
            enabled_modes=sum(1 for d in self._descriptors.values() if d.config.enabled),
            active_instances=len(self._instances),
            categories=categories,
        )

    def dependency_graph(self) -> DependencyGraph:
        """Get a read-only dependency view of the current descriptors."""
        return DependencyGraph(MappingProxyType(self._descriptors))

    def validate_dependencies(self, mode_id: str) -> Result[tuple[str, ...], ConductorError]:
        """Validate a mode's dependency chain. See DependencyGraph.validate."""
        return self.dependency_graph().validate(mode_id)

    async def create(self, mode_id: str, context: ModeContext | None = None) -> Mode:
        """Construct and record a live instance of a mode.

        A previous live instance of the same mode is replaced and cleaned up
        in the background.

        Args:
            mode_id: Identifier of the mode.
            context: Optional context attached to the new instance.

        Returns:
            The new instance.

        Raises:
            NotAvailableError: If the mode is unregistered or disabled.
            MissingDependencyError: If dependencies are absent or disabled.
            CircularDependencyError: If a dependency cycle is reachable.
            ModeLifecycleError: If the constructor raised.
            ConfigurationError: If the constructor did not return a Mode.
        """
        self._require_initialized("creating modes")
        descriptor = self._descriptors.get(mode_id)
        if descriptor is None or not descriptor.config.enabled:
            raise NotAvailableError(
                f"Mode '{mode_id}' is not registered or is disabled", mode_id=mode_id
            )

        load_order = self.validate_dependencies(mode_id).unwrap()

        try:
            instance = descriptor.constructor(
                mode_id,
                descriptor.config,
                files=self._files,
                logger=log.bind(mode_id=mode_id),
                state_config=self._state_config,
            )
        except ConductorError:
            raise
        except Exception as e:
            raise ModeLifecycleError(
                f"Failed to construct mode '{mode_id}': {e}", mode_id=mode_id
            ) from e

        if not isinstance(instance, Mode):
            raise ConfigurationError(
                f"Constructor for mode '{mode_id}' returned {type(instance).__name__}, "
                "which does not implement the Mode operations",
                config_key=mode_id,
            )

        if context is not None and hasattr(instance, "attach_context"):
            instance.attach_context(context)

        previous = self._instances.get(mode_id)
        self._instances[mode_id] = instance
        if previous is not None and previous is not instance:
            log.warning("registry.mode.instance_replaced", mode_id=mode_id)
            self._schedule_cleanup(mode_id, previous)

        log.info("registry.mode.created", mode_id=mode_id, load_order=list(load_order))
        return instance

    async def destroy(self, mode_id: str) -> bool:
        """Remove a live instance and await its cleanup.

        Returns:
            True if an instance was live.

        Raises:
            ModeLifecycleError: If cleanup failed. The instance is removed anyway.
        """
        instance = self._instances.pop(mode_id, None)
        if instance is None:
            log.debug("registry.mode.destroy_skipped", mode_id=mode_id)
            return False

        try:
            await instance.cleanup()
        except Exception as e:
            log.error("registry.mode.cleanup_failed", mode_id=mode_id, error=str(e))
            raise ModeLifecycleError(
                f"Cleanup of mode '{mode_id}' failed: {e}", mode_id=mode_id
            ) from e

        log.info("registry.mode.destroyed", mode_id=mode_id)
        return True

    async def destroy_all(self) -> TeardownReport:
        """Destroy every live instance, tolerating individual failures."""
        destroyed: list[str] = []
        failures: dict[str, str] = {}
        for mode_id in list(self._instances):
            try:
                await self.destroy(mode_id)
            except ModeLifecycleError as e:
                failures[mode_id] = e.message
            else:
                destroyed.append(mode_id)

        report = TeardownReport(destroyed=tuple(destroyed), failures=failures)
        log.info(
            "registry.teardown.completed",
            destroyed=len(report.destroyed),
            failed=report.failed_count,
        )
        return report

    def _schedule_cleanup(self, mode_id: str, instance: Mode) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside an event loop: nothing to schedule on, run now.
            asyncio.run(self._cleanup_in_background(mode_id, instance))
            return

        task = loop.create_task(
            self._cleanup_in_background(mode_id, instance), name=f"cleanup:{mode_id}"
        )
        self._pending_cleanups.add(task)
        task.add_done_callback(self._pending_cleanups.discard)

    async def _cleanup_in_background(self, mode_id: str, instance: Mode) -> None:
        try:
            await instance.cleanup()
        except Exception as e:
            log.warning("registry.mode.background_cleanup_failed", mode_id=mode_id, error=str(e))
        else:
            log.debug("registry.mode.background_cleanup_completed", mode_id=mode_id)

    async def wait_for_cleanups(self) -> None:
        """Wait for every scheduled background cleanup to finish."""
        while self._pending_cleanups:
            await asyncio.gather(*self._pending_cleanups, return_exceptions=True)

    def discover(self, group: str | None = None) -> list[str]:
        """Register descriptors published under an entry-point group.

        Each entry point resolves to a ModeDescriptor or a zero-argument
        callable returning one; the entry-point name is the mode id.
        Broken entry points are logged and skipped.

        Returns:
            Identifiers registered by this call.
        """
        self._require_initialized("discovery")
        group = group or self._config.entry_point_group
        registered: list[str] = []

        for entry_point in entry_points(group=group):
            try:
                loaded = entry_point.load()
                descriptor = loaded if isinstance(loaded, ModeDescriptor) else loaded()
                if not isinstance(descriptor, ModeDescriptor):
                    raise TypeError(f"expected ModeDescriptor, got {type(descriptor).__name__}")
                self.register(entry_point.name, descriptor)
            except Exception as e:
                log.warning(
                    "registry.discover.entry_point_failed",
                    name=entry_point.name,
                    group=group,
                    error=str(e),
                )
                continue
            registered.append(entry_point.name)

        log.info("registry.discover.completed", group=group, count=len(registered))
        return registered

    async def shutdown(self) -> TeardownReport:
        """Destroy all instances, drop all descriptors and reset initialization."""
        report = await self.destroy_all()
        await self.wait_for_cleanups()
        self._descriptors.clear()
        self._initialized = False
        log.info("registry.shutdown")
        return report


__all__ = [
    "ModeConstructor",
    "ModeDescriptor",
    "ModeMetadata",
    "ModeRegistry",
    "RegistryStats",
    "TeardownReport",
]
