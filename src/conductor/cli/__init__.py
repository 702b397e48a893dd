"""Command-line interface for Conductor."""
