"""CLI application — Click-based command hierarchy for Switchboard.

The main CLI group and global flags. Subcommand modules register
themselves by importing and adding to the group.
"""

from __future__ import annotations

import asyncio
import functools
from pathlib import Path
from typing import Any, Optional

import click


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output")
@click.option("--verbose", "-v", is_flag=True, help="Log at INFO level")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to switchboard.toml (default: search cwd, ~/.config/switchboard, project root)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    no_color: bool,
    config_path: Optional[Path],
) -> None:
    """Switchboard - run embedded agent turns for chat channels."""
    from switchboard.config import RunnerSettings
    from switchboard.main import configure_logging

    settings = RunnerSettings()
    configure_logging("INFO" if verbose else settings.log_level)

    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output
    ctx.obj["verbose"] = verbose
    ctx.obj["no_color"] = no_color
    ctx.obj["settings"] = settings
    ctx.obj["config_path"] = config_path or settings.config_path


def load_cli_config(ctx_obj: dict):
    """Load the deployment config named on the command line (or found on disk)."""
    from switchboard.config import load_switchboard_config
    from switchboard.config_file import ConfigValidationError

    try:
        return load_switchboard_config(ctx_obj.get("config_path"))
    except ConfigValidationError as e:
        raise click.ClickException(str(e))
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")


# ---------------------------------------------------------------------------
# Register subcommand modules
# ---------------------------------------------------------------------------

def _register_subcommands() -> None:
    """Import and register all subcommand groups/commands."""
    from switchboard.cli.config_cmd import config_group
    from switchboard.cli.models_cmd import models_group
    from switchboard.cli.run_cmd import run_cmd
    from switchboard.cli.sessions_cmd import sessions_group

    cli.add_command(run_cmd)
    cli.add_command(config_group)
    cli.add_command(models_group)
    cli.add_command(sessions_group)


_register_subcommands()
