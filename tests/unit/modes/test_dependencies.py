"""Unit tests for conductor.modes.dependencies module."""

import random
from typing import Any

import pytest

from conductor.core.errors import (
    CircularDependencyError,
    MissingDependencyError,
    NotAvailableError,
)
from conductor.modes.dependencies import DependencyGraph


@pytest.fixture
def graph_of(make_descriptor: Any) -> Any:
    """Build a DependencyGraph from an id -> dependencies mapping."""

    def _build(
        edges: dict[str, tuple[str, ...]], disabled: tuple[str, ...] = ()
    ) -> DependencyGraph:
        descriptors = {
            mode_id: make_descriptor(*deps, enabled=mode_id not in disabled)
            for mode_id, deps in edges.items()
        }
        return DependencyGraph(descriptors)

    return _build


class TestValidate:
    """Test DependencyGraph.validate."""

    def test_no_dependencies(self, graph_of: Any) -> None:
        """A mode without dependencies resolves to itself."""
        result = graph_of({"alpha": ()}).validate("alpha")
        assert result.is_ok
        assert result.value == ("alpha",)

    def test_load_order_puts_dependencies_first(self, graph_of: Any) -> None:
        """Dependencies come before dependents, the root last."""
        graph = graph_of({"build": ("plan",), "plan": ("discover",), "discover": ()})
        assert graph.validate("build").value == ("discover", "plan", "build")

    def test_unregistered_root(self, graph_of: Any) -> None:
        """Validating an unknown id fails with NotAvailableError."""
        result = graph_of({}).validate("ghost")
        assert isinstance(result.error, NotAvailableError)

    def test_missing_dependency(self, graph_of: Any) -> None:
        """alpha -> beta with beta unregistered names beta."""
        result = graph_of({"alpha": ("beta",)}).validate("alpha")
        assert isinstance(result.error, MissingDependencyError)
        assert result.error.missing == ("beta",)
        assert "beta" in result.error.message

    def test_every_missing_dependency_reported(self, graph_of: Any) -> None:
        """Missing ids anywhere in the chain are all reported."""
        graph = graph_of(
            {"root": ("a", "gone1"), "a": ("gone2", "off"), "off": ()},
            disabled=("off",),
        )
        result = graph.validate("root")
        assert isinstance(result.error, MissingDependencyError)
        assert set(result.error.missing) == {"gone1", "gone2", "off"}

    def test_three_node_cycle(self, graph_of: Any) -> None:
        """a -> b -> c -> a reports the cycle in traversal order."""
        graph = graph_of({"a": ("b",), "b": ("c",), "c": ("a",)})
        result = graph.validate("a")
        assert isinstance(result.error, CircularDependencyError)
        assert result.error.cycle == ("a", "b", "c", "a")
        assert "a -> b -> c -> a" in result.error.message

    def test_self_dependency(self, graph_of: Any) -> None:
        """A mode depending on itself is a cycle."""
        result = graph_of({"a": ("a",)}).validate("a")
        assert result.error.cycle == ("a", "a")

    def test_cycle_below_root(self, graph_of: Any) -> None:
        """A cycle reachable from the root fails even if the root is not on it."""
        graph = graph_of({"root": ("x",), "x": ("y",), "y": ("x",)})
        result = graph.validate("root")
        assert result.error.cycle == ("x", "y", "x")

    def test_diamond_is_not_a_cycle(self, graph_of: Any) -> None:
        """Two branches reaching the same node are accepted."""
        graph = graph_of(
            {"top": ("left", "right"), "left": ("base",), "right": ("base",), "base": ()}
        )
        result = graph.validate("top")
        assert result.is_ok
        order = result.value
        assert order[-1] == "top"
        assert order.index("base") < order.index("left")
        assert order.index("base") < order.index("right")
        assert len(order) == 4


class TestProperties:
    """Property-style checks over generated graphs."""

    @pytest.mark.parametrize("seed", range(10))
    def test_acyclic_graphs_validate_everywhere(self, graph_of: Any, seed: int) -> None:
        """Every node of a random DAG validates with a consistent order."""
        rng = random.Random(seed)
        nodes = [f"m{i}" for i in range(12)]
        edges = {
            node: tuple(n for n in nodes[i + 1 :] if rng.random() < 0.3)
            for i, node in enumerate(nodes)
        }
        graph = graph_of(edges)

        for node in nodes:
            result = graph.validate(node)
            assert result.is_ok
            order = result.value
            for mode_id in order:
                for dep in edges[mode_id]:
                    assert order.index(dep) < order.index(mode_id)

    @pytest.mark.parametrize("seed", range(10))
    def test_reported_cycles_close(self, graph_of: Any, seed: int) -> None:
        """A reported cycle starts and ends on the same id and follows real edges."""
        rng = random.Random(seed)
        nodes = [f"m{i}" for i in range(8)]
        edges = {node: tuple(rng.sample(nodes, 2)) for node in nodes}
        graph = graph_of(edges)

        for node in nodes:
            cycle = graph.find_cycle(node)
            if cycle is None:
                assert graph.validate(node).is_ok
                continue
            assert cycle[0] == cycle[-1]
            for current, following in zip(cycle, cycle[1:], strict=False):
                assert following in edges[current]
            assert isinstance(graph.validate(node).error, CircularDependencyError)


class TestHelpers:
    """Test the graph helper queries."""

    def test_dependencies_and_dependents(self, graph_of: Any) -> None:
        """dependencies_of and dependents_of read direct edges."""
        graph = graph_of({"a": ("b",), "c": ("b",), "b": ()})
        assert graph.dependencies_of("a") == ("b",)
        assert graph.dependencies_of("ghost") == ()
        assert graph.dependents_of("b") == ("a", "c")

    def test_resolve_order_raises_on_cycle(self, graph_of: Any) -> None:
        """resolve_order refuses cyclic graphs."""
        with pytest.raises(CircularDependencyError):
            graph_of({"a": ("b",), "b": ("a",)}).resolve_order("a")
