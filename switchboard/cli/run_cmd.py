"""Run command — execute one embedded agent turn from the terminal."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from switchboard.cli.app import async_cmd, load_cli_config
from switchboard.cli.formatters import echo_json, get_console


def split_model_ref(ref: str) -> tuple[str, str]:
    """``"anthropic/claude-sonnet-4-5"`` -> ``("anthropic", "claude-sonnet-4-5")``."""
    provider, sep, model = ref.strip().partition("/")
    if not sep or not provider or not model:
        raise click.BadParameter(f"Expected provider/model, got {ref!r}", param_hint="--model")
    return provider, model


@click.command("run")
@click.option("--message", "-m", "message", required=True, help="The user prompt for this turn")
@click.option("--session-id", default="cli", show_default=True, help="Session identifier")
@click.option("--session-key", default=None, help="Routing key, e.g. agent:main:telegram:dm:123")
@click.option(
    "--session-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Transcript path (default: <data_dir>/agents/<agent>/sessions/<session-id>.jsonl)",
)
@click.option(
    "--workspace",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Agent working directory (default: agent config, else cwd)",
)
@click.option("--model", "model_ref", default=None, help="provider/model (default: agent config)")
@click.option("--timeout-ms", type=int, default=None, help="Turn timeout in milliseconds")
@click.option(
    "--agent-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory holding models.json (default: <data_dir>/agents/<agent>/agent)",
)
@click.option("--system-prompt", default=None, help="Replace the default system prompt")
@click.pass_context
@async_cmd
async def run_cmd(
    ctx: click.Context,
    message: str,
    session_id: str,
    session_key: Optional[str],
    session_file: Optional[Path],
    workspace: Optional[Path],
    model_ref: Optional[str],
    timeout_ms: Optional[int],
    agent_dir: Optional[Path],
    system_prompt: Optional[str],
) -> None:
    """Run one agent turn and print its replies."""
    from switchboard.api.base import UnsupportedModelApiError
    from switchboard.api.registry import UnknownModelError
    from switchboard.runner import run_embedded_agent
    from switchboard.sessions.keys import AgentConfigError, resolve_session_agent_ids

    settings = ctx.obj["settings"]
    config = load_cli_config(ctx.obj)

    try:
        agent_id = resolve_session_agent_ids(session_key, config=config).session_agent_id
    except AgentConfigError as e:
        raise click.ClickException(str(e))

    entry = config.agent(agent_id)
    defaults = config.agents.defaults if config.agents else None
    model_ref = (
        model_ref
        or (entry.model if entry else None)
        or (defaults.model if defaults else None)
    )
    if not model_ref:
        raise click.UsageError("No model given and none configured for this agent; pass --model")
    provider, model = split_model_ref(model_ref)

    if workspace is None:
        configured = (entry.workspace if entry else None) or (defaults.workspace if defaults else None)
        workspace = Path(configured).expanduser() if configured else Path.cwd()
    if session_file is None:
        session_file = settings.sessions_dir_for(agent_id) / f"{session_id}.jsonl"
    if timeout_ms is None and defaults is not None:
        timeout_ms = defaults.timeout_ms

    try:
        result = await run_embedded_agent(
            session_id=session_id,
            session_key=session_key,
            session_file=session_file,
            workspace_dir=workspace,
            config=config,
            prompt=message,
            provider=provider,
            model=model,
            timeout_ms=timeout_ms,
            agent_dir=agent_dir,
            system_prompt=system_prompt,
            settings=settings,
        )
    except (UnknownModelError, UnsupportedModelApiError, AgentConfigError) as e:
        raise click.ClickException(str(e))

    if ctx.obj.get("json"):
        echo_json(result.to_dict())
    else:
        console = get_console(no_color=ctx.obj.get("no_color", False))
        for payload in result.payloads:
            if payload.is_error:
                console.print(f"[red]{payload.text}[/red]")
            else:
                console.print(payload.text, markup=False)
        if ctx.obj.get("verbose") and result.meta is not None:
            usage = result.meta.agent_meta.usage or {}
            console.print(
                f"[dim]{provider}/{model} | {result.meta.duration_ms} ms | "
                f"tokens in={usage.get('input', 0)} out={usage.get('output', 0)} | "
                f"transcript={session_file}[/dim]"
            )

    if result.is_error:
        ctx.exit(1)
