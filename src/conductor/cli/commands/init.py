"""Init command for Conductor.

Creates the project-local ``.conductor/`` directory with a default
configuration file.
"""

from pathlib import Path
from typing import Annotated

import typer

from conductor.cli.formatters.panels import print_info, print_success
from conductor.config.loader import CONFIG_FILE_NAME, create_default_config, load_config
from conductor.config.models import get_project_dir

PROJECT_SUBDIRS = ("config", "modes")


def init_project(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Project root directory."),
    ] = Path("."),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config.yaml."),
    ] = False,
) -> None:
    """Initialize Conductor in a project.

    Creates .conductor/ with config.yaml and the state, config and modes
    directories. Existing configuration is kept unless --force is given.
    """
    project_dir = get_project_dir(path.resolve())
    existed = (project_dir / CONFIG_FILE_NAME).exists()
    config_path = create_default_config(project_dir, overwrite=force)

    config = load_config(config_path)
    for subdir in (config.state.state_dir, *PROJECT_SUBDIRS):
        (project_dir / subdir).mkdir(parents=True, exist_ok=True)

    if existed and not force:
        print_info(f"Conductor already initialized at {project_dir}")
        return
    print_success(f"Initialized Conductor at {project_dir}")


__all__ = ["init_project"]
