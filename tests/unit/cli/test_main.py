"""Unit tests for CLI main module."""

import re

from typer.testing import CliRunner

from conductor import __version__
from conductor.cli.main import app

runner = CliRunner()


def _plain(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


class TestMainApp:
    """Tests for the main Typer application."""

    def test_app_has_help(self) -> None:
        """--help shows the application description."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Conductor" in result.output
        assert "mode plugin runtime" in result.output

    def test_app_version_option(self) -> None:
        """--version prints the package version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in _plain(result.output)

    def test_app_version_short_option(self) -> None:
        """-V is an alias for --version."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in _plain(result.output)

    def test_no_args_shows_help(self) -> None:
        """Running without args shows help (exit code 2 for no_args_is_help)."""
        result = runner.invoke(app, [])
        assert result.exit_code == 2
        assert "Conductor" in result.output


class TestCommandGroups:
    """Tests for command registration."""

    def test_init_command_registered(self) -> None:
        """The init command is available."""
        result = runner.invoke(app, ["init", "--help"])
        assert result.exit_code == 0
        assert "--force" in _plain(result.output)

    def test_state_group_registered(self) -> None:
        """The state group lists its subcommands."""
        result = runner.invoke(app, ["state", "--help"])
        assert result.exit_code == 0
        output = _plain(result.output)
        for command in ("list", "verify", "clear"):
            assert command in output
