"""Model catalog commands — sync models.json, list resolvable models."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from switchboard.cli.app import load_cli_config
from switchboard.cli.formatters import build_table, echo_json, get_console


def _agent_dir(ctx: click.Context, agent_id: Optional[str], agent_dir: Optional[Path]) -> Path:
    from switchboard.sessions.keys import AgentConfigError, normalize_agent_id, resolve_default_agent_id

    if agent_dir is not None:
        return agent_dir
    if agent_id is None:
        try:
            agent_id = resolve_default_agent_id(load_cli_config(ctx.obj))
        except AgentConfigError as e:
            raise click.ClickException(str(e))
    return ctx.obj["settings"].agent_dir_for(normalize_agent_id(agent_id))


@click.group("models")
def models_group() -> None:
    """Manage the per-agent model catalog (models.json)."""


@models_group.command("sync")
@click.option("--agent", "agent_id", default=None, help="Agent id (default: the default agent)")
@click.option("--agent-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.pass_context
def models_sync(ctx: click.Context, agent_id: Optional[str], agent_dir: Optional[Path]) -> None:
    """Write the configured providers into the agent's models.json."""
    from switchboard.models_config import ensure_models_json, models_json_path

    config = load_cli_config(ctx.obj)
    target_dir, wrote = ensure_models_json(config, _agent_dir(ctx, agent_id, agent_dir))
    path = models_json_path(target_dir)
    if ctx.obj.get("json"):
        echo_json({"path": str(path), "wrote": wrote})
    elif wrote:
        click.echo(f"Wrote {path}")
    elif not config.models.providers:
        click.echo("No providers configured; nothing to write.")
    else:
        click.echo(f"{path} is up to date")


@models_group.command("list")
@click.option("--agent", "agent_id", default=None, help="Agent id (default: the default agent)")
@click.option("--agent-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.pass_context
def models_list(ctx: click.Context, agent_id: Optional[str], agent_dir: Optional[Path]) -> None:
    """List the models in the agent's models.json."""
    from switchboard.api.registry import ModelRegistry

    rows = ModelRegistry.from_agent_dir(_agent_dir(ctx, agent_id, agent_dir)).list_models()
    if ctx.obj.get("json"):
        echo_json(rows)
        return
    if not rows:
        click.echo("No models found. Run `switchboard models sync` first.")
        return
    console = get_console(no_color=ctx.obj.get("no_color", False))
    console.print(build_table(
        "Models",
        ["Provider", "Model", "API", "Context", "Max tokens", "Reasoning"],
        [
            [r["provider"], r["id"], r["api"], r["context_window"], r["max_tokens"], r["reasoning"]]
            for r in rows
        ],
    ))
