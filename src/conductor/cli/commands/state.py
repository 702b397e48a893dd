"""State command group for Conductor.

Inspect, verify and clear the durable state records of modes.
"""

import asyncio
from pathlib import Path
from typing import Annotated, Any

import typer

from conductor.cli.formatters import console
from conductor.cli.formatters.panels import print_error, print_success, print_warning
from conductor.cli.formatters.tables import create_table, print_table, styled_status
from conductor.config.loader import CONFIG_FILE_NAME, load_config
from conductor.config.models import ConductorConfig, get_project_dir
from conductor.core.errors import ConfigurationError, PersistenceError
from conductor.modes.state import (
    DEFAULT_STATE_ID,
    LEGACY_SCHEMA_VERSION,
    StateManager,
)
from conductor.observability.logging import configure_logging
from conductor.persistence.files import FileOperations

app = typer.Typer(
    name="state",
    help="Inspect and maintain mode state records.",
    no_args_is_help=True,
)

PathOption = Annotated[
    Path,
    typer.Option("--path", "-p", help="Project root directory."),
]


def _open_project(path: Path) -> tuple[FileOperations, ConductorConfig]:
    project_dir = get_project_dir(path.resolve())
    try:
        config = load_config(project_dir / CONFIG_FILE_NAME)
    except ConfigurationError as e:
        print_error(e.message, title="Configuration Error")
        raise typer.Exit(code=1) from e
    configure_logging(config.logging)
    return FileOperations(project_dir), config


def _manager(
    files: FileOperations,
    config: ConductorConfig,
    mode_id: str,
    schema_version: str | None = None,
) -> StateManager:
    return StateManager(
        mode_id,
        schema_version or LEGACY_SCHEMA_VERSION,
        files,
        config=config.state,
    )


async def _inspect_file(
    files: FileOperations,
    config: ConductorConfig,
    mode_id: str,
    path: str,
    schema_version: str | None,
) -> dict[str, Any]:
    """Decode and validate one stored file without migrating it."""
    row: dict[str, Any] = {"file": path, "status": "missing"}
    if not await files.exists(path):
        return row

    manager = _manager(files, config, mode_id)
    try:
        record = manager.codec.decode(await files.read_file(path))
    except (OSError, PersistenceError) as e:
        return {**row, "status": "corrupt", "detail": str(e)}

    # Without an explicit target, judge the record against its own version.
    target = schema_version or record.schema_version
    result = _manager(files, config, mode_id, target).validate_state(record)
    if not result.is_valid:
        status = "invalid"
    elif result.needs_migration:
        status = "migrate"
    else:
        status = "ok"

    return {
        **row,
        "status": status,
        "timestamp": record.timestamp.isoformat(timespec="seconds"),
        "version": record.schema_version or "legacy",
        "compressed": record.compressed,
        "detail": "; ".join(result.errors or result.warnings),
    }


async def _list_rows(
    files: FileOperations, config: ConductorConfig, mode_id: str
) -> list[dict[str, Any]]:
    manager = _manager(files, config, mode_id)
    rows = []
    for state_id in await manager.list_states():
        row = await _inspect_file(files, config, mode_id, manager.state_path(state_id), None)
        row["state_id"] = state_id
        row["backup"] = await files.exists(manager.backup_path(state_id))
        rows.append(row)
    return rows


@app.command("list")
def list_states(
    mode_id: Annotated[str, typer.Argument(help="Mode identifier.")],
    path: PathOption = Path("."),
) -> None:
    """List the state records stored for a mode."""
    files, config = _open_project(path)
    rows = asyncio.run(_list_rows(files, config, mode_id))
    if not rows:
        print_warning(f"No state stored for mode '{mode_id}'")
        return

    table = create_table(f"State of {mode_id}")
    table.add_column("State", style="cyan", no_wrap=True)
    table.add_column("Saved")
    table.add_column("Version")
    table.add_column("Compressed", justify="center")
    table.add_column("Backup", justify="center")
    table.add_column("Status", justify="center")
    for row in rows:
        table.add_row(
            row["state_id"],
            row.get("timestamp", "-"),
            row.get("version", "-"),
            "yes" if row.get("compressed") else "no",
            "yes" if row["backup"] else "no",
            styled_status(row["status"]),
        )
    print_table(table)


async def _verify(
    files: FileOperations,
    config: ConductorConfig,
    mode_id: str,
    state_id: str,
    schema_version: str | None,
) -> tuple[list[dict[str, Any]], str | None]:
    manager = _manager(files, config, mode_id, schema_version)
    rows = [
        await _inspect_file(files, config, mode_id, p, schema_version)
        for p in (manager.state_path(state_id), manager.backup_path(state_id))
    ]
    try:
        loaded = await manager.load(state_id)
    except PersistenceError as e:
        return rows, e.message
    return rows, None if loaded is not None else "missing"


@app.command()
def verify(
    mode_id: Annotated[str, typer.Argument(help="Mode identifier.")],
    state_id: Annotated[
        str,
        typer.Option("--state-id", "-s", help="State record identifier."),
    ] = DEFAULT_STATE_ID,
    schema_version: Annotated[
        str | None,
        typer.Option("--schema-version", help="Schema version the mode expects."),
    ] = None,
    path: PathOption = Path("."),
) -> None:
    """Verify a state record and its backup.

    Exits with code 1 when the record cannot be recovered.
    """
    files, config = _open_project(path)
    rows, failure = asyncio.run(_verify(files, config, mode_id, state_id, schema_version))

    table = create_table(f"{mode_id}/{state_id}")
    table.add_column("File", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Version")
    table.add_column("Detail", style="muted")
    for row in rows:
        table.add_row(
            row["file"],
            styled_status(row["status"]),
            row.get("version", "-"),
            row.get("detail", ""),
        )
    print_table(table)

    if failure == "missing":
        print_warning(f"No state '{state_id}' stored for mode '{mode_id}'")
    elif failure is not None:
        print_error(failure, title="Unrecoverable State")
        raise typer.Exit(code=1)
    else:
        console.print("[success]State is loadable.[/]")


@app.command()
def clear(
    mode_id: Annotated[str, typer.Argument(help="Mode identifier.")],
    state_id: Annotated[
        str | None,
        typer.Option("--state-id", "-s", help="Only clear this record."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation."),
    ] = False,
    path: PathOption = Path("."),
) -> None:
    """Delete state records (and backups) of a mode."""
    files, config = _open_project(path)
    target = f"state '{state_id}'" if state_id else "all state"
    if not yes and not typer.confirm(f"Delete {target} of mode '{mode_id}'?"):
        raise typer.Abort()

    removed = asyncio.run(_manager(files, config, mode_id).clear(state_id))
    print_success(f"Removed {removed} file(s) of mode '{mode_id}'")


__all__ = ["app"]
