"""
Shared fixtures for the Switchboard test suite.

Provides deployment configs, isolated runner settings, and a scripted model
backend so individual test modules can focus on behavior rather than setup.
No test touches the network.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from switchboard.api.base import BACKENDS, ModelBackend, Usage
from switchboard.api.registry import ResolvedModel
from switchboard.config import ModelDefinition, RunnerSettings, SwitchboardConfig


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

MOCK_PROVIDER = "mock"
MOCK_MODEL = "mock-1"
GOOGLE_PROVIDER = "google"
GOOGLE_MODEL = "gemini-mock"


def make_config(**overrides: Any) -> SwitchboardConfig:
    """A config with one OpenAI-responses provider and one Google provider."""
    data: dict[str, Any] = {
        "models": {
            "providers": {
                MOCK_PROVIDER: {
                    "api": "openai-responses",
                    "apiKey": "test-key",
                    "baseUrl": "https://example.invalid/v1",
                    "models": [{"id": MOCK_MODEL, "name": "Mock 1", "maxTokens": 1024}],
                },
                GOOGLE_PROVIDER: {
                    "api": "google-generative-ai",
                    "apiKey": "test-key",
                    "models": [{"id": GOOGLE_MODEL}],
                },
            }
        }
    }
    data.update(overrides)
    return SwitchboardConfig.model_validate(data)


@pytest.fixture()
def config() -> SwitchboardConfig:
    return make_config()


@pytest.fixture()
def settings(tmp_path) -> RunnerSettings:
    """Runner settings rooted in tmp_path with fast, deterministic retries."""
    return RunnerSettings(
        data_dir=tmp_path / "data",
        retry_max_retries=0,
        retry_jitter_range=0.0,
        max_tool_iterations=5,
    )


# ---------------------------------------------------------------------------
# Scripted backend
# ---------------------------------------------------------------------------

class ScriptedBackend(ModelBackend):
    """
    A backend that replays a script instead of calling a provider.

    Each ``complete()`` pops the next step:
        str             -> assistant text reply
        list            -> assistant content blocks (toolCall blocks allowed)
        BaseException   -> raised
        ("sleep", s)    -> sleeps ``s`` seconds, then replies "late"
    An exhausted script answers "ok".
    """

    script: list[Any] = []
    calls: list[dict[str, Any]] = []
    closed: int = 0

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list] = None,
    ) -> dict[str, Any]:
        cls = type(self)
        cls.calls.append({
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": [tool.name for tool in tools or []],
        })
        step: Any = cls.script.pop(0) if cls.script else "ok"
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, tuple) and step[0] == "sleep":
            await asyncio.sleep(step[1])
            step = "late"
        if isinstance(step, str):
            content = [{"type": "text", "text": step}]
        else:
            content = list(step)
        stop_reason = "toolUse" if any(b.get("type") == "toolCall" for b in content) else "stop"
        return self._assistant_message(content, stop_reason, Usage(input=10, output=5))

    async def aclose(self) -> None:
        type(self).closed += 1


@pytest.fixture()
def scripted_backend(monkeypatch):
    """Serve the openai-responses and google-generative-ai APIs from a fresh script."""
    backend_cls = type(
        "TestScriptedBackend",
        (ScriptedBackend,),
        {"script": [], "calls": [], "closed": 0},
    )
    monkeypatch.setitem(BACKENDS, "openai-responses", backend_cls)
    monkeypatch.setitem(BACKENDS, "google-generative-ai", backend_cls)
    return backend_cls


@pytest.fixture()
def backend_factory():
    """Build a standalone scripted backend instance for loop-level tests."""

    def _make(script: list[Any], api: str = "openai-responses") -> ScriptedBackend:
        backend_cls = type(
            "LoopScriptedBackend",
            (ScriptedBackend,),
            {"script": list(script), "calls": [], "closed": 0},
        )
        model = ResolvedModel(
            provider=MOCK_PROVIDER,
            id=MOCK_MODEL,
            api=api,
            definition=ModelDefinition(id=MOCK_MODEL),
        )
        return backend_cls(model)

    return _make
