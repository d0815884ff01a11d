"""
Tool Definitions and Routing.

Tool implementations (file I/O, shell, browser) live with the caller; a turn
only receives ``ToolDefinition`` objects carrying a JSON Schema and a
handler.  Before handing them to the model backend the runner:

1. FILTERS them against the sandbox tool policy when a sandbox is active.
2. SPLITS them into the runtime's built-in tools and caller-supplied custom
   tools.  The runtime's built-ins are never used: every tool is routed to
   ``custom_tools`` so execution always goes through the caller's handler.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ToolDefinition:
    """
    A tool the model may call.

    ``parameters`` is the JSON Schema for the tool's arguments; ``handler`` is
    called with those arguments as keyword arguments and may be sync or async.
    """
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    handler: Optional[Callable[..., Any]] = None
    label: str = ""
    timeout: Optional[float] = None       # Per-tool timeout in seconds (None = use default)

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.name

    def to_api_format(self) -> dict[str, Any]:
        """Provider-neutral tool schema; backends reshape it for their wire format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class SplitTools:
    built_in_tools: list[ToolDefinition] = field(default_factory=list)
    custom_tools: list[ToolDefinition] = field(default_factory=list)


def split_sdk_tools(
    tools: Sequence[ToolDefinition],
    sandbox_enabled: bool,
) -> SplitTools:
    """
    Partition ``tools`` for the runtime.

    Every tool goes to ``custom_tools`` whether or not the turn is sandboxed.
    ``sandbox_enabled`` has no effect on routing today; it stays in the
    signature because callers pass it.
    """
    return SplitTools(built_in_tools=[], custom_tools=list(tools))


def _matches_any(name: str, patterns: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatch(lowered, pattern.strip().lower()) for pattern in patterns if pattern.strip())


def filter_tools_by_policy(
    tools: Sequence[ToolDefinition],
    allow: Sequence[str] = (),
    deny: Sequence[str] = (),
) -> list[ToolDefinition]:
    """
    Apply a sandbox allow/deny policy (glob patterns, case-insensitive).

    Deny always wins.  An empty allow list allows everything not denied.
    """
    kept: list[ToolDefinition] = []
    for tool in tools:
        if _matches_any(tool.name, deny):
            logger.debug("tools.denied_by_policy", tool=tool.name)
            continue
        if allow and not _matches_any(tool.name, allow):
            logger.debug("tools.not_in_allowlist", tool=tool.name)
            continue
        kept.append(tool)
    return kept
