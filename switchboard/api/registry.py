"""
Model Registry — Resolving ``provider/model`` Against models.json.

The registry is a read-only view of one agent's ``models.json``.  Resolution
is strict: a provider or model id that is not in the catalog raises
``UnknownModelError``, which is a configuration error and is never turned
into a chat reply.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import structlog

from switchboard.config import ModelDefinition, ProviderConfig
from switchboard.models_config import read_models_json

logger = structlog.get_logger(__name__)


class UnknownModelError(LookupError):
    """Raised when ``provider/model`` is not in the agent's catalog."""

    def __init__(self, provider: str, model: str):
        super().__init__(f"Unknown model: {provider}/{model}")
        self.provider = provider
        self.model = model


@dataclass(frozen=True)
class ResolvedModel:
    provider: str
    id: str
    api: str
    definition: ModelDefinition
    base_url: Optional[str] = None
    api_key: Optional[str] = None


def provider_env_var(provider: str) -> str:
    """``openai`` -> ``OPENAI_API_KEY``; ``google-vertex`` -> ``GOOGLE_VERTEX_API_KEY``."""
    return re.sub(r"[^A-Za-z0-9]+", "_", provider).strip("_").upper() + "_API_KEY"


class ModelRegistry:
    """The providers and models one agent may call."""

    def __init__(self, providers: dict[str, ProviderConfig]):
        self._providers = providers

    @classmethod
    def from_agent_dir(cls, agent_dir: Path) -> "ModelRegistry":
        data = read_models_json(agent_dir)
        providers: dict[str, ProviderConfig] = {}
        for name, raw in data.get("providers", {}).items():
            try:
                providers[name] = ProviderConfig.model_validate(raw)
            except ValueError as e:
                logger.warning("model_registry.invalid_provider", provider=name, error=str(e))
        return cls(providers)

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        return dict(self._providers)

    def find(self, provider: str, model_id: str) -> Optional[ResolvedModel]:
        provider_cfg = self._providers.get(provider)
        if provider_cfg is None:
            return None
        for definition in provider_cfg.models:
            if definition.id == model_id:
                return ResolvedModel(
                    provider=provider,
                    id=model_id,
                    api=provider_cfg.api,
                    definition=definition,
                    base_url=provider_cfg.base_url,
                    api_key=provider_cfg.api_key or os.environ.get(provider_env_var(provider)),
                )
        return None

    def resolve(self, provider: str, model_id: str) -> ResolvedModel:
        resolved = self.find(provider, model_id)
        if resolved is None:
            raise UnknownModelError(provider, model_id)
        return resolved

    def list_models(self) -> list[dict[str, Any]]:
        rows = []
        for name in sorted(self._providers):
            provider_cfg = self._providers[name]
            for definition in provider_cfg.models:
                rows.append({
                    "provider": name,
                    "id": definition.id,
                    "name": definition.name or definition.id,
                    "api": provider_cfg.api,
                    "context_window": definition.context_window,
                    "max_tokens": definition.max_tokens,
                    "reasoning": definition.reasoning,
                })
        return rows
