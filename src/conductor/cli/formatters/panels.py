"""Rich panels for one-off CLI messages."""

from rich.panel import Panel

from conductor.cli.formatters import console


def _panel(message: str, title: str, style: str, color: str) -> Panel:
    return Panel(
        f"[{style}]{message}[/]",
        title=f"[bold {color}]{title}[/]",
        border_style=color,
        expand=False,
    )


def print_info(message: str, title: str = "Info") -> None:
    console.print(_panel(message, title, "info", "blue"))


def print_success(message: str, title: str = "Success") -> None:
    console.print(_panel(message, title, "success", "green"))


def print_warning(message: str, title: str = "Warning") -> None:
    console.print(_panel(message, title, "warning", "yellow"))


def print_error(message: str, title: str = "Error") -> None:
    console.print(_panel(message, title, "error", "red"))


__all__ = ["print_error", "print_info", "print_success", "print_warning"]
