"""
Sandbox Models — What the Model Is Allowed to Know About Its Sandbox.

The sandbox subsystem owns container lifecycle; Switchboard only reads a
``SandboxContext`` once per turn.  That context carries internals (docker
image, capabilities, container names) that have no business in a prompt, so
``build_embedded_sandbox_info`` projects it into ``SandboxPromptInfo``: the
minimal, serializable view that is safe to embed in the system prompt.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from switchboard.config import CamelModel

WorkspaceAccess = Literal["none", "ro", "rw"]
ElevatedLevel = Literal["on", "off"]

# Where the agent's own workspace is mounted inside the sandbox when it is
# distinct from the sandbox workspace.
AGENT_WORKSPACE_MOUNT = "/agent"


class SandboxDockerSettings(CamelModel):
    image: str
    container_prefix: str = ""
    workdir: str = "/workspace"
    read_only_root: bool = True
    tmpfs: list[str] = Field(default_factory=list)
    network: str = "none"
    user: Optional[str] = None
    cap_drop: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class SandboxToolPolicy(CamelModel):
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class SandboxBrowserContext(CamelModel):
    control_url: str
    no_vnc_url: Optional[str] = None
    container_name: Optional[str] = None


class SandboxContext(CamelModel):
    """Read-only description of the sandbox a turn runs in."""

    enabled: bool = True
    session_key: str
    workspace_dir: str
    agent_workspace_dir: str
    workspace_access: WorkspaceAccess = "none"
    container_name: str
    container_workdir: str = "/workspace"
    docker: Optional[SandboxDockerSettings] = None
    tools: SandboxToolPolicy = Field(default_factory=SandboxToolPolicy)
    browser_allow_host_control: bool = False
    browser: Optional[SandboxBrowserContext] = None


class ElevationPolicy(CamelModel):
    enabled: bool = False
    allowed: bool = False
    default_level: ElevatedLevel = "off"


class ElevatedPromptInfo(CamelModel):
    allowed: bool
    default_level: ElevatedLevel


class SandboxPromptInfo(CamelModel):
    """The prompt-safe projection of a ``SandboxContext``."""

    enabled: bool
    workspace_dir: str
    workspace_access: WorkspaceAccess
    agent_workspace_mount: Optional[str] = None
    browser_control_url: Optional[str] = None
    browser_no_vnc_url: Optional[str] = None
    host_browser_allowed: bool = False
    elevated: Optional[ElevatedPromptInfo] = None


def build_embedded_sandbox_info(
    sandbox: Optional[SandboxContext] = None,
    elevated: Optional[ElevationPolicy] = None,
) -> Optional[SandboxPromptInfo]:
    """Project ``sandbox`` for prompt injection; ``None`` for unsandboxed turns."""
    if sandbox is None:
        return None

    agent_workspace_mount = None
    if (
        sandbox.workspace_access != "none"
        and sandbox.agent_workspace_dir != sandbox.workspace_dir
    ):
        agent_workspace_mount = AGENT_WORKSPACE_MOUNT

    host_control = sandbox.browser_allow_host_control
    browser = sandbox.browser if host_control else None

    info = SandboxPromptInfo(
        enabled=sandbox.enabled,
        workspace_dir=sandbox.workspace_dir,
        workspace_access=sandbox.workspace_access,
        agent_workspace_mount=agent_workspace_mount,
        browser_control_url=browser.control_url if browser else None,
        browser_no_vnc_url=browser.no_vnc_url if browser else None,
        host_browser_allowed=host_control,
    )
    if elevated is not None and elevated.enabled:
        info.elevated = ElevatedPromptInfo(
            allowed=elevated.allowed,
            default_level=elevated.default_level,
        )
    return info
