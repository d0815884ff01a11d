"""Session routing, history windows, and durable transcripts."""

from switchboard.sessions.history import get_dm_history_limit, limit_history_turns
from switchboard.sessions.keys import (
    AgentConfigError,
    SessionAgentIds,
    SessionScope,
    parse_agent_session_key,
    parse_session_scope,
    resolve_default_agent_id,
    resolve_session_agent_ids,
)
from switchboard.sessions.transcript import TranscriptStore

__all__ = [
    "AgentConfigError",
    "SessionAgentIds",
    "SessionScope",
    "TranscriptStore",
    "get_dm_history_limit",
    "limit_history_turns",
    "parse_agent_session_key",
    "parse_session_scope",
    "resolve_default_agent_id",
    "resolve_session_agent_ids",
]
