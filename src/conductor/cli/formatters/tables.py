"""Rich tables for state and registry listings."""

from typing import Any

from rich.table import Table

from conductor.cli.formatters import console

_STATUS_STYLES = {
    "ok": "success",
    "valid": "success",
    "migrate": "warning",
    "warning": "warning",
    "missing": "muted",
    "corrupt": "error",
    "invalid": "error",
}


def create_table(
    title: str | None = None,
    *,
    show_header: bool = True,
    border_style: str = "blue",
) -> Table:
    """Create a Rich Table with consistent Conductor styling.

    Example:
        table = create_table("States")
        table.add_column("ID", style="cyan")
        table.add_row("current")
        print_table(table)
    """
    return Table(
        title=title,
        show_header=show_header,
        border_style=border_style,
        header_style="bold cyan",
        row_styles=["", "dim"],
    )


def create_key_value_table(data: dict[str, Any], title: str | None = None) -> Table:
    """Create a two-column table for key-value data."""
    table = create_table(title, show_header=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(str(key), str(value))
    return table


def styled_status(status: str) -> str:
    """Wrap a status word in its semantic style markup."""
    style = _STATUS_STYLES.get(status.lower())
    return f"[{style}]{status}[/]" if style else status


def print_table(table: Table) -> None:
    console.print(table)


__all__ = ["create_key_value_table", "create_table", "print_table", "styled_status"]
