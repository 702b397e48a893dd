"""Mode plugins: capability interface, registry, factory and state engine.

Usage:
    from conductor.modes import ModeDescriptor, ModeFactory, ModeRegistry

    registry = ModeRegistry(files)
    await registry.initialize()
    registry.register("discovery", ModeDescriptor(DiscoveryMode))
    mode = await ModeFactory(registry).create_mode("discovery", context)
"""

from conductor.modes.base import (
    REQUIRED_CAPABILITIES,
    AbstractMode,
    Mode,
    ModeConfig,
    ModeContext,
    ModeResult,
)
from conductor.modes.dependencies import DependencyGraph
from conductor.modes.factory import ModeFactory
from conductor.modes.registry import (
    ModeDescriptor,
    ModeMetadata,
    ModeRegistry,
    RegistryStats,
    TeardownReport,
)

__all__ = [
    "REQUIRED_CAPABILITIES",
    "AbstractMode",
    "DependencyGraph",
    "Mode",
    "ModeConfig",
    "ModeContext",
    "ModeDescriptor",
    "ModeFactory",
    "ModeMetadata",
    "ModeRegistry",
    "ModeResult",
    "RegistryStats",
    "TeardownReport",
]
