"""Conductor - plugin lifecycle and durable state for workflow modes.

Conductor hosts interchangeable "mode" plugins (discovery, planning,
build) behind a registry and factory, and gives each mode a durable,
checksummed, migratable state store.

Example:
    # Using CLI
    conductor init
    conductor state verify discovery

    # Using Python
    from conductor.modes import ModeDescriptor, ModeFactory, ModeRegistry
    from conductor.persistence import FileOperations
"""

__version__ = "0.4.0"

__all__ = ["__version__", "main"]


def main() -> None:
    """Main entry point for the Conductor CLI."""
    from conductor.cli.main import app

    app()
