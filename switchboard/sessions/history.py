"""
History Windows — How Much of the Past the Model Gets to See.

A "turn" is one user message plus everything after it (assistant replies,
tool results) up to the next user message.  Windows are always measured in
user turns, never in raw message count, so a tool-heavy turn is kept whole.

DM conversations can carry a per-channel default window and per-user
overrides.  An explicit ``0`` means "unlimited" and is deliberately distinct
from "not configured" (``None``).
"""

from __future__ import annotations

from typing import Any, Optional

from switchboard.config import SwitchboardConfig
from switchboard.sessions.keys import parse_session_scope


def limit_history_turns(
    messages: list[dict[str, Any]],
    limit: Optional[int],
) -> list[dict[str, Any]]:
    """
    Keep only the last ``limit`` user turns of ``messages``.

    Returns the very same list object when nothing is trimmed (no limit, a
    non-positive limit, or not enough user turns), so callers can detect
    "unchanged" with an identity check.
    """
    if not limit or limit <= 0 or not messages:
        return messages

    user_count = 0
    last_user_index = len(messages)
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].get("role") != "user":
            continue
        user_count += 1
        if user_count > limit:
            return messages[last_user_index:]
        last_user_index = index
    return messages


def get_dm_history_limit(
    session_key: Optional[str],
    config: Optional[SwitchboardConfig],
) -> Optional[int]:
    """
    Resolve the history window for a DM session key.

    Per-user ``dms.<id>.historyLimit`` wins over the channel's
    ``dmHistoryLimit``.  Non-DM keys, unknown providers, and missing config
    all yield ``None``.
    """
    if not session_key or config is None:
        return None
    scope = parse_session_scope(session_key)
    if scope is None or not scope.is_dm:
        return None
    channel = config.channel(scope.provider)
    if channel is None:
        return None
    override = channel.dms.get(scope.peer_id)
    if override is not None and override.history_limit is not None:
        return override.history_limit
    return channel.dm_history_limit
