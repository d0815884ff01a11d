# switchboard/config.py
"""
Configuration for Switchboard.

Two layers flow through this module:

``RunnerSettings``
    Process-level knobs (data directory, timeouts, retry policy) loaded from
    ``SWITCHBOARD_*`` environment variables and an optional ``.env`` file via
    pydantic-settings.

``SwitchboardConfig``
    The deployment description (agents, model providers, and per-channel DM
    history limits), usually loaded from ``switchboard.toml``.  Keys use the
    camelCase spelling of the on-disk catalog (``dmHistoryLimit``,
    ``contextWindow``) but snake_case names are accepted too.

Neither is cached globally.  Every component receives its config explicitly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above switchboard/).
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_AGENT_ID = "main"

# Channels whose session keys carry a DM discriminator we understand.
DM_PROVIDERS: tuple[str, ...] = (
    "telegram",
    "whatsapp",
    "discord",
    "slack",
    "signal",
    "imessage",
    "msteams",
)


class RunnerSettings(BaseSettings):
    """Process-level settings for the turn runner."""

    data_dir: Path = Field(Path("./switchboard_data"), alias="SWITCHBOARD_DATA_DIR")
    config_path: Optional[Path] = Field(None, alias="SWITCHBOARD_CONFIG")
    timeout_ms: int = Field(600_000, alias="SWITCHBOARD_TIMEOUT_MS")
    max_tool_iterations: int = Field(50, alias="SWITCHBOARD_MAX_TOOL_ITERATIONS")
    max_tokens: int = Field(8192, alias="SWITCHBOARD_MAX_TOKENS")
    request_timeout_seconds: float = Field(120.0, alias="SWITCHBOARD_REQUEST_TIMEOUT_SECONDS")
    tool_timeout_seconds: float = Field(60.0, alias="SWITCHBOARD_TOOL_TIMEOUT_SECONDS")
    retry_max_retries: int = Field(2, alias="SWITCHBOARD_RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(0.5, alias="SWITCHBOARD_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(8.0, alias="SWITCHBOARD_RETRY_MAX_DELAY")
    retry_exponential_base: float = Field(2.0, alias="SWITCHBOARD_RETRY_EXPONENTIAL_BASE")
    retry_jitter_range: float = Field(0.25, alias="SWITCHBOARD_RETRY_JITTER_RANGE")
    log_level: str = Field("WARNING", alias="SWITCHBOARD_LOG_LEVEL")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "RunnerSettings":
        self.timeout_ms = max(1, int(self.timeout_ms))
        self.max_tool_iterations = max(1, int(self.max_tool_iterations))
        self.max_tokens = max(1, int(self.max_tokens))
        self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.tool_timeout_seconds = max(1.0, float(self.tool_timeout_seconds))
        self.retry_max_retries = max(0, int(self.retry_max_retries))
        self.retry_base_delay = max(0.05, float(self.retry_base_delay))
        self.retry_max_delay = max(self.retry_base_delay, float(self.retry_max_delay))
        self.retry_exponential_base = max(1.0, float(self.retry_exponential_base))
        self.retry_jitter_range = max(0.0, min(1.0, float(self.retry_jitter_range)))
        self.log_level = self.log_level.strip().upper() or "WARNING"
        return self

    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def agent_dir_for(self, agent_id: str) -> Path:
        """Default per-agent directory holding the materialized models.json."""
        return self.resolved_data_dir() / "agents" / agent_id / "agent"

    def sessions_dir_for(self, agent_id: str) -> Path:
        return self.resolved_data_dir() / "agents" / agent_id / "sessions"


# ---------------------------------------------------------------------------
# Deployment config
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    """Base for on-disk structures spelled in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AgentEntry(CamelModel):
    id: str
    default: bool = False
    name: Optional[str] = None
    workspace: Optional[str] = None
    # "provider/model-id"
    model: Optional[str] = None
    system_prompt: Optional[str] = None


class AgentDefaults(CamelModel):
    model: Optional[str] = None
    workspace: Optional[str] = None
    timeout_ms: Optional[int] = None


class AgentsConfig(CamelModel):
    entries: list[AgentEntry] = Field(default_factory=list, alias="list")
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class ModelCost(CamelModel):
    input: float = 0.0
    output: float = 0.0
    cache_read: float = 0.0
    cache_write: float = 0.0


class ModelDefinition(CamelModel):
    id: str
    name: Optional[str] = None
    reasoning: bool = False
    input: list[str] = Field(default_factory=lambda: ["text"])
    cost: ModelCost = Field(default_factory=ModelCost)
    context_window: int = 128_000
    max_tokens: int = 8192


class ProviderConfig(CamelModel):
    api: str = "openai-completions"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    models: list[ModelDefinition] = Field(default_factory=list)


class ModelsConfig(CamelModel):
    # merge: keep providers already present in models.json; replace: overwrite.
    mode: Literal["merge", "replace"] = "merge"
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)


class DmConfig(CamelModel):
    history_limit: Optional[int] = None


class ChannelConfig(CamelModel):
    dm_history_limit: Optional[int] = None
    dms: dict[str, DmConfig] = Field(default_factory=dict)


class SwitchboardConfig(CamelModel):
    """
    The deployment description consumed by every turn.

    Read-only at orchestration time.  Build it with ``model_validate`` from a
    dict (camelCase or snake_case keys) or ``load_switchboard_config()``.
    """

    agents: Optional[AgentsConfig] = None
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    telegram: Optional[ChannelConfig] = None
    whatsapp: Optional[ChannelConfig] = None
    discord: Optional[ChannelConfig] = None
    slack: Optional[ChannelConfig] = None
    signal: Optional[ChannelConfig] = None
    imessage: Optional[ChannelConfig] = None
    msteams: Optional[ChannelConfig] = None

    def channel(self, provider: str) -> Optional[ChannelConfig]:
        """Return the channel block for a recognised DM provider, if configured."""
        if provider not in DM_PROVIDERS:
            return None
        return getattr(self, provider)

    def agent(self, agent_id: str) -> Optional[AgentEntry]:
        if self.agents is None:
            return None
        for entry in self.agents.entries:
            if entry.id.strip().lower() == agent_id:
                return entry
        return None


def load_switchboard_config(path: Optional[Path] = None) -> SwitchboardConfig:
    """
    Load the deployment config from ``path`` or the first switchboard.toml found.

    Returns an empty config when no file exists; raises ``ConfigValidationError``
    (a ``ValueError``) naming each bad field when the file is malformed.
    """
    from switchboard.config_file import find_config, load_config, validate_config

    target = path or find_config()
    if target is None:
        logger.debug("config.no_file_found")
        return SwitchboardConfig()
    config = validate_config(load_config(target))
    logger.debug(
        "config.loaded",
        path=str(target),
        providers=sorted(config.models.providers),
        agents=len(config.agents.entries) if config.agents else 0,
    )
    return config
