"""
Default system prompt for embedded turns.

Callers that need full control pass a system prompt override; everyone else
gets this prompt, assembled from the agent's identity, its workspace, the
tools it may call, what it may know about its sandbox, and a one-line
runtime description.
"""

from __future__ import annotations

import platform
import socket
from typing import Optional, Sequence

from switchboard.sandbox import SandboxPromptInfo

BASE_PROMPT = (
    "You are a personal assistant agent running inside Switchboard. "
    "You answer the user directly and use the tools listed below when they help. "
    "Keep replies concise; the user reads them in a chat app."
)


def _sandbox_lines(info: SandboxPromptInfo) -> list[str]:
    lines = [
        "## Sandbox",
        "Your tools run inside a sandboxed container.",
        f"Sandbox workspace: {info.workspace_dir}",
        f"Agent workspace access: {info.workspace_access}",
    ]
    if info.agent_workspace_mount:
        lines.append(f"Agent workspace mounted at: {info.agent_workspace_mount}")
    if info.browser_control_url:
        lines.append(f"Sandbox browser control URL: {info.browser_control_url}")
    if info.browser_no_vnc_url:
        lines.append(f"Sandbox browser observer (noVNC): {info.browser_no_vnc_url}")
    lines.append(
        "Host browser control: " + ("allowed" if info.host_browser_allowed else "not allowed")
    )
    if info.elevated is not None and info.elevated.allowed:
        lines.append(
            f"Elevated host commands are available (default level: {info.elevated.default_level})."
        )
    return lines


def runtime_line(provider: str, model: str) -> str:
    return (
        f"Runtime: host={socket.gethostname()} | os={platform.system()} {platform.release()} "
        f"| python={platform.python_version()} | model={provider}/{model}"
    )


def build_agent_system_prompt(
    *,
    agent_id: str,
    workspace_dir: str,
    tool_names: Sequence[str],
    provider: str,
    model: str,
    sandbox_info: Optional[SandboxPromptInfo] = None,
    extra_system_prompt: Optional[str] = None,
) -> str:
    sections = [
        BASE_PROMPT,
        f"Agent: {agent_id}",
        f"Your working directory is: {workspace_dir}",
    ]
    if tool_names:
        sections.append("## Tools\n" + "\n".join(f"- {name}" for name in tool_names))
    else:
        sections.append("## Tools\nNo tools are available in this session.")
    if sandbox_info is not None and sandbox_info.enabled:
        sections.append("\n".join(_sandbox_lines(sandbox_info)))
    if extra_system_prompt and extra_system_prompt.strip():
        sections.append(extra_system_prompt.strip())
    sections.append(runtime_line(provider, model))
    return "\n\n".join(sections)
