"""Configuration commands — path, init, get, set, unset, list."""

from __future__ import annotations

import math
from pathlib import Path

import click

from switchboard.config_file import (
    CONFIG_FILENAME,
    delete_value,
    find_config,
    generate_template,
    get_value,
    load_config,
    resolve_key,
    set_value,
    write_config,
)


def _config_path(ctx: click.Context) -> Path | None:
    explicit = (ctx.obj or {}).get("config_path")
    return Path(explicit) if explicit else find_config()


@click.group("config", invoke_without_command=True)
@click.pass_context
def config_group(ctx: click.Context) -> None:
    """Manage Switchboard configuration (switchboard.toml)."""
    if ctx.invoked_subcommand is None:
        _list_config(_config_path(ctx))


@config_group.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Show which switchboard.toml is in effect."""
    path = _config_path(ctx)
    click.echo(str(path) if path else "(none)")


@config_group.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: click.Context, key: str) -> None:
    """Get a configuration value by dotted key."""
    path = _config_path(ctx)
    if not path or not path.is_file():
        raise click.ClickException(f"No {CONFIG_FILENAME} found")
    data = load_config(path)
    try:
        value = get_value(data, key)
        click.echo(repr(value))
    except KeyError:
        raise click.ClickException(f"Key not found: {key}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value by dotted key.

    Field names may be given in camelCase or snake_case; the value is
    checked against the config schema before the file is written.
    """
    path = _config_path(ctx)
    if path is None:
        path = Path(CONFIG_FILENAME)

    data = load_config(path) if path.is_file() else {}

    parsed = _parse_value(value)

    try:
        written = resolve_key(data, key)
        set_value(data, key, parsed)
    except ValueError as e:
        raise click.ClickException(str(e))
    write_config(path, data)
    click.echo(f"Set {written} = {parsed!r} in {path}")


@config_group.command("unset")
@click.argument("key")
@click.pass_context
def config_unset(ctx: click.Context, key: str) -> None:
    """Remove a configuration value."""
    path = _config_path(ctx)
    if not path or not path.is_file():
        raise click.ClickException(f"No {CONFIG_FILENAME} found")
    data = load_config(path)
    try:
        delete_value(data, key)
        write_config(path, data)
        click.echo(f"Removed {key} from {path}")
    except KeyError:
        raise click.ClickException(f"Key not found: {key}")


@config_group.command("init")
def config_init() -> None:
    """Generate a switchboard.toml template in the current directory."""
    target = Path(CONFIG_FILENAME)
    if target.exists():
        raise click.ClickException(f"{target} already exists")
    target.write_text(generate_template())
    click.echo(f"Created {target}")


def _list_config(path: Path | None) -> None:
    data = load_config(path) if path and path.is_file() else {}
    click.echo(f"TOML file: {path or '(none)'}")
    if not data:
        click.echo("  (empty)")
        return
    for line in _flatten(data):
        click.echo(f"  {line}")


def _flatten(data: dict, prefix: str = "") -> list[str]:
    lines = []
    for key, value in sorted(data.items()):
        dotted = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            lines.extend(_flatten(value, dotted))
        else:
            lines.append(f"{dotted} = {value!r}")
    return lines


def _parse_value(raw: str):
    """Parse a string value into the appropriate Python type."""
    if raw.lower() == "true":
        return True
    if raw.lower() == "false":
        return False
    try:
        val = int(raw)
        return val
    except ValueError:
        pass
    try:
        val = float(raw)
        if not math.isfinite(val):
            raise click.ClickException(f"Invalid float value: {raw}")
        return val
    except ValueError:
        pass
    return raw
