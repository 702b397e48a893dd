"""Shared fixtures for mode, registry and state tests."""

from pathlib import Path
from typing import Any

import pytest

from conductor.config.models import StateConfig
from conductor.modes.base import AbstractMode, ModeConfig, ModeResult
from conductor.modes.registry import ModeDescriptor, ModeRegistry
from conductor.persistence.files import FileOperations


class EchoMode(AbstractMode):
    """Minimal mode that echoes its input and records lifecycle events."""

    name = "Echo"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.events: list[str] = []
        self.valid = True
        self.fail_cleanup = False
        super().__init__(*args, **kwargs)

    def initialize_prompts(self) -> None:
        self._prompts["greeting"] = "Hello {name}"

    async def do_initialize(self) -> None:
        self.events.append("initialize")

    async def do_execute(self, input: str, context: dict[str, Any] | None) -> ModeResult[Any]:
        if input == "boom":
            raise RuntimeError("boom")
        return ModeResult.ok(f"echo: {input}")

    async def do_validate(self) -> ModeResult[bool]:
        if self.valid:
            return ModeResult.ok(True)
        return ModeResult.failure("not ready")

    async def do_cleanup(self) -> None:
        self.events.append("cleanup")
        if self.fail_cleanup:
            raise RuntimeError("cleanup exploded")

    async def on_before_execute(self, context: dict[str, Any] | None) -> None:
        self.events.append("before")

    async def on_after_execute(self, result: ModeResult[Any]) -> None:
        self.events.append("after")

    async def on_error(self, error: Exception) -> None:
        self.events.append(f"error:{error}")


class RefusingMode(EchoMode):
    """Mode whose own validation always fails."""

    async def do_validate(self) -> ModeResult[bool]:
        return ModeResult.failure("refuses to run")


@pytest.fixture
def fast_state_config() -> StateConfig:
    """State configuration without retry backoff delays."""
    return StateConfig(retry_wait_initial=0.0, retry_wait_max=0.0)


@pytest.fixture
async def files(tmp_path: Path) -> FileOperations:
    """File store rooted in a temporary .conductor directory."""
    store = FileOperations(tmp_path / ".conductor")
    await store.initialize()
    return store


@pytest.fixture
def echo_mode_cls() -> type[EchoMode]:
    return EchoMode


@pytest.fixture
def refusing_mode_cls() -> type[RefusingMode]:
    return RefusingMode


@pytest.fixture
def make_descriptor() -> Any:
    """Build descriptors for EchoMode with the given dependencies."""

    def _make(
        *dependencies: str,
        constructor: Any = EchoMode,
        version: str | None = "1.0.0",
        enabled: bool = True,
        load_priority: int | None = None,
    ) -> ModeDescriptor:
        return ModeDescriptor(
            constructor=constructor,
            config=ModeConfig(version=version, enabled=enabled, dependencies=dependencies),
            load_priority=load_priority,
        )

    return _make


@pytest.fixture
async def registry(files: FileOperations, fast_state_config: StateConfig) -> Any:
    """An initialized registry that is shut down after the test."""
    registry = ModeRegistry(files, state_config=fast_state_config)
    await registry.initialize()
    yield registry
    await registry.shutdown()
