"""Durable per-mode state engine.

Usage:
    from conductor.modes.state import StateManager

    manager = StateManager("discovery", "2.0.0", files, config=StateConfig())
    await manager.save({"step": 3})
    record = await manager.load()
"""

from conductor.modes.state.codec import StateCodec, StateDecodeError
from conductor.modes.state.manager import StateManager, StateMigrator, StateValidator
from conductor.modes.state.models import (
    DEFAULT_STATE_ID,
    LEGACY_SCHEMA_VERSION,
    StateRecord,
    ValidationResult,
)

__all__ = [
    "DEFAULT_STATE_ID",
    "LEGACY_SCHEMA_VERSION",
    "StateCodec",
    "StateDecodeError",
    "StateManager",
    "StateMigrator",
    "StateRecord",
    "StateValidator",
    "ValidationResult",
]
