"""Session commands — resolve routing for a key, inspect a transcript."""

from __future__ import annotations

from pathlib import Path

import click

from switchboard.cli.app import load_cli_config
from switchboard.cli.formatters import build_table, echo_json, get_console

_PREVIEW_LEN = 60


@click.group("sessions")
def sessions_group() -> None:
    """Inspect session routing and transcripts."""


@sessions_group.command("resolve")
@click.argument("session_key")
@click.pass_context
def sessions_resolve(ctx: click.Context, session_key: str) -> None:
    """Show which agent owns SESSION_KEY and its DM history window."""
    from switchboard.sessions.history import get_dm_history_limit
    from switchboard.sessions.keys import (
        AgentConfigError,
        parse_session_scope,
        resolve_session_agent_ids,
    )

    config = load_cli_config(ctx.obj)
    try:
        ids = resolve_session_agent_ids(session_key, config=config)
    except AgentConfigError as e:
        raise click.ClickException(str(e))
    scope = parse_session_scope(session_key)
    info = {
        "session_key": session_key,
        "default_agent_id": ids.default_agent_id,
        "session_agent_id": ids.session_agent_id,
        "provider": scope.provider if scope else None,
        "kind": scope.kind if scope else None,
        "peer_id": scope.peer_id if scope else None,
        "dm_history_limit": get_dm_history_limit(session_key, config),
    }
    if ctx.obj.get("json"):
        echo_json(info)
        return
    for key, value in info.items():
        click.echo(f"{key}: {'-' if value is None else value}")


def _entry_summary(entry: dict) -> tuple[str, str]:
    from switchboard.api.base import message_text, message_tool_calls

    if entry.get("type") == "custom":
        return entry.get("customType", ""), ""
    message = entry.get("message") or {}
    text = message_text(message)
    calls = message_tool_calls(message)
    if calls:
        text = (text + " " if text else "") + " ".join(f"[{c.get('name')}]" for c in calls)
    text = " ".join(text.split())
    if len(text) > _PREVIEW_LEN:
        text = text[:_PREVIEW_LEN] + "..."
    return message.get("role", ""), text


@sessions_group.command("show")
@click.argument("session_file", type=click.Path(path_type=Path, dir_okay=False, exists=True))
@click.option("--limit", type=int, default=None, help="Only the last N entries")
@click.pass_context
def sessions_show(ctx: click.Context, session_file: Path, limit: int | None) -> None:
    """Print the entries of a transcript file."""
    from switchboard.sessions.transcript import TranscriptStore

    store = TranscriptStore.open(session_file)
    entries = store.get_entries()
    if limit is not None and limit > 0:
        entries = entries[-limit:]
    if ctx.obj.get("json"):
        echo_json({"header": store.header, "entries": entries})
        return
    rows = []
    for entry in entries:
        role, preview = _entry_summary(entry)
        rows.append([entry.get("id", ""), entry.get("type", ""), role, preview])
    console = get_console(no_color=ctx.obj.get("no_color", False))
    console.print(build_table(f"Session {store.session_id}", ["Id", "Type", "Role", "Text"], rows))
