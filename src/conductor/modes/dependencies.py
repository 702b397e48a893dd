"""Dependency validation over registered mode descriptors.

Dependency edges reference descriptor identifiers, never live instances.
The graph is advisory: it only reads the descriptor table.

Example:
    graph = DependencyGraph(descriptors)
    result = graph.validate("planning")

    if result.is_ok:
        load_order = result.value  # ("discovery", "planning")
    else:
        raise result.error  # MissingDependencyError / CircularDependencyError
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from conductor.core.errors import (
    CircularDependencyError,
    ConductorError,
    MissingDependencyError,
    NotAvailableError,
)
from conductor.core.types import Result
from conductor.observability.logging import get_logger

if TYPE_CHECKING:
    from conductor.modes.registry import ModeDescriptor

log = get_logger(__name__)


class DependencyGraph:
    """Read-only view of the dependency edges between registered modes.

    Cycle detection is a depth-first traversal with a path stack. Only a
    node still on the current path closes a cycle, so sibling branches
    reaching the same node (a diamond) are accepted. Nodes that were fully
    explored are never explored again.
    """

    def __init__(self, descriptors: Mapping[str, ModeDescriptor]) -> None:
        self._descriptors = descriptors

    def dependencies_of(self, mode_id: str) -> tuple[str, ...]:
        """Get the direct dependencies of a mode (empty if unregistered)."""
        descriptor = self._descriptors.get(mode_id)
        if descriptor is None:
            return ()
        return tuple(descriptor.config.dependencies)

    def dependents_of(self, mode_id: str) -> tuple[str, ...]:
        """Get the registered modes that directly depend on a mode."""
        return tuple(
            sorted(
                other
                for other, descriptor in self._descriptors.items()
                if mode_id in descriptor.config.dependencies
            )
        )

    def _is_usable(self, mode_id: str) -> bool:
        descriptor = self._descriptors.get(mode_id)
        return descriptor is not None and descriptor.config.enabled

    def find_missing(self, mode_id: str) -> tuple[str, ...]:
        """Find every unregistered or disabled dependency reachable from a mode.

        Returns:
            Missing identifiers in the order they were first encountered.
        """
        missing: list[str] = []
        seen: set[str] = {mode_id}
        stack = [mode_id]

        while stack:
            current = stack.pop()
            for dep in self.dependencies_of(current):
                if dep in seen:
                    continue
                seen.add(dep)
                if not self._is_usable(dep):
                    missing.append(dep)
                # Disabled dependencies are still registered; their own
                # dependencies count too.
                if dep in self._descriptors:
                    stack.append(dep)

        return tuple(missing)

    def find_cycle(self, mode_id: str) -> tuple[str, ...] | None:
        """Find a dependency cycle reachable from a mode.

        Returns:
            The cycle as identifiers in traversal order, with the first
            entry repeated at the end (``("a", "b", "c", "a")``), or None.
        """
        path: list[str] = []
        on_path: set[str] = set()
        cleared: set[str] = set()

        def visit(node: str) -> tuple[str, ...] | None:
            if node in on_path:
                return (*path[path.index(node) :], node)
            if node in cleared or node not in self._descriptors:
                return None

            path.append(node)
            on_path.add(node)
            for dep in self.dependencies_of(node):
                cycle = visit(dep)
                if cycle is not None:
                    return cycle
            path.pop()
            on_path.discard(node)
            cleared.add(node)
            return None

        return visit(mode_id)

    def resolve_order(self, mode_id: str) -> tuple[str, ...]:
        """Resolve the load order of a mode and its dependencies.

        Returns:
            Identifiers with dependencies before dependents, ``mode_id`` last.

        Raises:
            CircularDependencyError: If a cycle is reachable from the mode.
        """
        cycle = self.find_cycle(mode_id)
        if cycle is not None:
            raise CircularDependencyError(mode_id, cycle)

        order: list[str] = []
        placed: set[str] = set()

        def place(node: str) -> None:
            if node in placed or node not in self._descriptors:
                return
            placed.add(node)
            for dep in self.dependencies_of(node):
                place(dep)
            order.append(node)

        place(mode_id)
        return tuple(order)

    def validate(self, mode_id: str) -> Result[tuple[str, ...], ConductorError]:
        """Validate the dependency chain of a mode.

        Args:
            mode_id: Identifier of the mode to check.

        Returns:
            Result with the load order, or NotAvailableError (unregistered
            root), MissingDependencyError (every absent or disabled
            dependency) or CircularDependencyError (the cycle found).
        """
        if mode_id not in self._descriptors:
            return Result.err(
                NotAvailableError(f"Mode '{mode_id}' is not registered", mode_id=mode_id)
            )

        missing = self.find_missing(mode_id)
        if missing:
            log.warning("dependencies.missing", mode_id=mode_id, missing=list(missing))
            return Result.err(MissingDependencyError(mode_id, missing))

        cycle = self.find_cycle(mode_id)
        if cycle is not None:
            log.warning("dependencies.cycle_detected", mode_id=mode_id, cycle=list(cycle))
            return Result.err(CircularDependencyError(mode_id, cycle))

        return Result.ok(self.resolve_order(mode_id))


__all__ = ["DependencyGraph"]
