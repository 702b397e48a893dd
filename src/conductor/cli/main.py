"""Conductor CLI main entry point.

This module defines the main Typer application and registers the
Conductor commands.
"""

from typing import Annotated

import typer

from conductor import __version__
from conductor.cli.commands import init, state
from conductor.cli.formatters import console

app = typer.Typer(
    name="conductor",
    help="Conductor - mode plugin runtime and state maintenance.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("init")(init.init_project)
app.add_typer(state.app, name="state")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]Conductor[/] version [green]{__version__}[/]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
) -> None:
    """Conductor - mode plugin runtime and state maintenance.

    Use [bold cyan]conductor COMMAND --help[/] for command-specific help.
    """


__all__ = ["app", "main"]
