"""Rich formatters for CLI output.

This module provides a shared Console instance used by every Conductor
command.

Semantic Colors:
- green: success
- yellow: warning
- red: error
- blue: info
"""

from rich.console import Console
from rich.theme import Theme

CONDUCTOR_THEME = Theme(
    {
        "success": "green",
        "warning": "yellow",
        "error": "red",
        "info": "blue",
        "muted": "dim",
        "highlight": "bold cyan",
    }
)

console = Console(theme=CONDUCTOR_THEME)

__all__ = ["console", "CONDUCTOR_THEME"]
