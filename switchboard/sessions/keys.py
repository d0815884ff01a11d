"""
Session Keys — Who Is Talking, and to Which Agent.

Channel adapters identify a conversation with an opaque, colon-delimited key:

    global
    <provider>:<kind>:<identifier>           e.g. telegram:dm:123456
    agent:<agentId>:<rest>                   e.g. agent:beta:slack:channel:C1

The identifier is everything after the second delimiter and may itself
contain colons (Teams e-mail addresses, Matrix ids), so nothing here ever
splits more than it needs to.

Parsing never raises.  A key we cannot make sense of simply routes to the
configured default agent with no DM-specific behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from switchboard.config import DEFAULT_AGENT_ID, SwitchboardConfig

AGENT_KEY_PREFIX = "agent"
GLOBAL_SESSION_KEY = "global"
DM_KIND = "dm"


class AgentConfigError(ValueError):
    """Raised when the configured agent list does not name exactly one default."""


@dataclass(frozen=True)
class AgentSessionKey:
    agent_id: str
    rest: str


@dataclass(frozen=True)
class SessionScope:
    """The ``<provider>:<kind>:<identifier>`` part of a session key."""

    provider: str
    kind: str
    peer_id: str

    @property
    def is_dm(self) -> bool:
        return self.kind == DM_KIND


@dataclass(frozen=True)
class SessionAgentIds:
    default_agent_id: str
    session_agent_id: str


def normalize_agent_id(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def parse_agent_session_key(session_key: Optional[str]) -> Optional[AgentSessionKey]:
    """Split ``agent:<id>:<rest>``; returns None for any other shape."""
    if not session_key:
        return None
    parts = session_key.strip().split(":", 2)
    if len(parts) < 3 or parts[0].strip().lower() != AGENT_KEY_PREFIX:
        return None
    agent_id = normalize_agent_id(parts[1])
    rest = parts[2].strip()
    if not agent_id or not rest:
        return None
    return AgentSessionKey(agent_id=agent_id, rest=rest)


def strip_agent_prefix(session_key: str) -> str:
    parsed = parse_agent_session_key(session_key)
    return parsed.rest if parsed else session_key.strip()


def parse_session_scope(session_key: Optional[str]) -> Optional[SessionScope]:
    """
    Parse the provider/kind/identifier triple, ignoring any agent prefix.

    The identifier is kept verbatim, colons included.
    """
    if not session_key:
        return None
    rest = strip_agent_prefix(session_key)
    if rest == GLOBAL_SESSION_KEY:
        return None
    parts = rest.split(":", 2)
    if len(parts) < 3:
        return None
    provider = parts[0].strip().lower()
    kind = parts[1].strip().lower()
    peer_id = parts[2]
    if not provider or not kind or not peer_id:
        return None
    return SessionScope(provider=provider, kind=kind, peer_id=peer_id)


def resolve_default_agent_id(config: Optional[SwitchboardConfig]) -> str:
    """
    Return the id of the agent marked ``default``.

    With no agent list configured at all, the implicit single agent ``main``
    is the default.  A configured list must mark exactly one agent default.
    """
    entries = config.agents.entries if config is not None and config.agents else []
    if not entries:
        return DEFAULT_AGENT_ID
    defaults = [entry for entry in entries if entry.default]
    if len(defaults) != 1:
        raise AgentConfigError(
            f"Exactly one agent must be marked default; found {len(defaults)} "
            f"among {[entry.id for entry in entries]}"
        )
    agent_id = normalize_agent_id(defaults[0].id)
    if not agent_id:
        raise AgentConfigError("The default agent has an empty id")
    return agent_id


def resolve_session_agent_ids(
    session_key: Optional[str] = None,
    *,
    config: Optional[SwitchboardConfig] = None,
) -> SessionAgentIds:
    """Resolve the default agent and the agent that owns ``session_key``."""
    default_agent_id = resolve_default_agent_id(config)
    parsed = parse_agent_session_key(session_key)
    session_agent_id = parsed.agent_id if parsed else default_agent_id
    return SessionAgentIds(
        default_agent_id=default_agent_id,
        session_agent_id=session_agent_id,
    )
