"""Mode Factory - validated creation of live mode instances.

The factory composes the registry's checks into one compensating
operation: a mode is only handed out after its dependencies resolved and
its own validate() passed; anything created along a failing path is torn
down again.
"""

from __future__ import annotations

from conductor.core.errors import ModeLifecycleError, ModeValidationError, NotAvailableError
from conductor.modes.base import Mode, ModeContext
from conductor.modes.registry import ModeRegistry
from conductor.observability.logging import get_logger

log = get_logger(__name__)


class ModeFactory:
    """Creates validated, context-bound mode instances.

    Example:
        factory = ModeFactory(registry)
        mode = await factory.create_mode("planning", ModeContext(project_path=root))
    """

    def __init__(self, registry: ModeRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ModeRegistry:
        return self._registry

    async def create_mode(self, mode_id: str, context: ModeContext) -> Mode:
        """Create a mode, validate it and inject its context.

        Args:
            mode_id: Identifier of the mode.
            context: Execution context to attach.

        Returns:
            The live, validated instance.

        Raises:
            NotAvailableError: If the mode is unregistered or disabled.
            MissingDependencyError: If dependencies are absent or disabled.
            CircularDependencyError: If a dependency cycle is reachable.
            ModeValidationError: If the instance failed its own validation.
        """
        log.debug("factory.create.started", mode_id=mode_id)

        if not self._registry.is_available(mode_id):
            raise NotAvailableError(
                f"Mode '{mode_id}' is not available (unregistered or disabled)",
                mode_id=mode_id,
            )

        deps = self._registry.validate_dependencies(mode_id)
        if deps.is_err:
            log.warning(
                "factory.create.dependencies_failed",
                mode_id=mode_id,
                error=str(deps.error),
            )
            raise deps.error

        mode = await self._registry.create(mode_id)

        try:
            validation = await mode.validate()
        except Exception as e:
            await self._discard(mode_id)
            raise ModeValidationError(
                f"Mode '{mode_id}' validation raised: {e}", mode_id=mode_id
            ) from e

        if not validation.success:
            await self._discard(mode_id)
            raise ModeValidationError(
                f"Mode '{mode_id}' failed validation: {validation.error or 'unknown error'}",
                mode_id=mode_id,
            )

        self.inject_context(mode, context)
        log.info("factory.create.completed", mode_id=mode_id)
        return mode

    def inject_context(self, mode: Mode, context: ModeContext) -> None:
        """Attach a context to a mode that accepts one."""
        attach = getattr(mode, "attach_context", None)
        if callable(attach):
            attach(context)

    async def _discard(self, mode_id: str) -> None:
        try:
            await self._registry.destroy(mode_id)
        except ModeLifecycleError as e:
            log.warning("factory.create.teardown_failed", mode_id=mode_id, error=e.message)
