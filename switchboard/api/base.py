"""
Model Backends — One Completion Primitive per API Family.

A backend turns the internal transcript format into one provider request and
the provider's reply back into an internal assistant message:

    {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "..."},
            {"type": "thinking", "thinking": "..."},
            {"type": "toolCall", "id": "...", "name": "...", "arguments": {...}},
        ],
        "stopReason": "stop" | "toolUse" | "length",
        "api": "...", "provider": "...", "model": "...",
        "usage": {"input": 0, "output": 0, "cacheRead": 0, "cacheWrite": 0, "totalTokens": 0},
        "timestamp": 1700000000000,
    }

Tool results travel as ``{"role": "toolResult", "toolCallId", "toolName",
"content", "isError"}`` messages.  Backends are looked up by the ``api``
field of a provider in models.json; ``register_backend`` lets a caller plug
in its own.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import structlog

from switchboard.harness.retry import RetryConfig

if TYPE_CHECKING:
    from switchboard.api.registry import ResolvedModel
    from switchboard.tools.registry import ToolDefinition

logger = structlog.get_logger(__name__)


class ModelRequestError(RuntimeError):
    """Raised when a provider rejects a request or returns an unusable reply."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelBackendInitError(RuntimeError):
    """Raised when a backend cannot be constructed (missing key, bad URL)."""


class UnsupportedModelApiError(LookupError):
    """Raised when no backend is registered for a provider's ``api``."""


@dataclass
class Usage:
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_write

    def add(self, other: "Usage") -> None:
        self.input += other.input
        self.output += other.output
        self.cache_read += other.cache_read
        self.cache_write += other.cache_write

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "Usage":
        raw = message.get("usage") or {}
        return cls(
            input=int(raw.get("input", 0) or 0),
            output=int(raw.get("output", 0) or 0),
            cache_read=int(raw.get("cacheRead", 0) or 0),
            cache_write=int(raw.get("cacheWrite", 0) or 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "cacheRead": self.cache_read,
            "cacheWrite": self.cache_write,
            "totalTokens": self.total_tokens,
        }


def message_text(message: dict[str, Any]) -> str:
    """Join the text blocks of a message (string content is returned as-is)."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "\n".join(parts)


def message_tool_calls(message: dict[str, Any]) -> list[dict[str, Any]]:
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, dict) and b.get("type") == "toolCall"]


class ModelBackend(ABC):
    """Base class for a provider API family."""

    api: str = ""

    def __init__(
        self,
        model: "ResolvedModel",
        *,
        max_tokens: Optional[int] = None,
        request_timeout_seconds: float = 120.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self._model = model
        self._max_tokens = min(
            max_tokens or model.definition.max_tokens,
            model.definition.max_tokens,
        )
        self._request_timeout_seconds = float(request_timeout_seconds)
        self._retry_config = retry_config or RetryConfig()
        self._total_calls = 0

    @property
    def model(self) -> "ResolvedModel":
        return self._model

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list["ToolDefinition"]] = None,
    ) -> dict[str, Any]:
        """Run one completion and return an internal assistant message."""

    async def aclose(self) -> None:
        """Release network resources; safe to call more than once."""

    def _assistant_message(
        self,
        content: list[dict[str, Any]],
        stop_reason: str,
        usage: Usage,
    ) -> dict[str, Any]:
        self._total_calls += 1
        return {
            "role": "assistant",
            "content": content,
            "stopReason": stop_reason,
            "api": self._model.api,
            "provider": self._model.provider,
            "model": self._model.id,
            "usage": usage.to_dict(),
            "timestamp": int(time.time() * 1000),
        }


BACKENDS: dict[str, type[ModelBackend]] = {}


def register_backend(api: str, backend_cls: type[ModelBackend]) -> None:
    """Make ``backend_cls`` serve providers whose ``api`` is ``api``."""
    BACKENDS[api] = backend_cls
    logger.debug("backends.registered", api=api, backend=backend_cls.__name__)


def get_backend_class(api: str) -> type[ModelBackend]:
    try:
        return BACKENDS[api]
    except KeyError:
        raise UnsupportedModelApiError(
            f"No model backend registered for api '{api}' "
            f"(available: {', '.join(sorted(BACKENDS)) or 'none'})"
        ) from None


def create_backend(model: "ResolvedModel", **kwargs: Any) -> ModelBackend:
    backend_cls = get_backend_class(model.api)
    try:
        return backend_cls(model, **kwargs)
    except ModelBackendInitError:
        raise
    except Exception as exc:
        raise ModelBackendInitError(
            f"Failed to initialize {model.api} backend for {model.provider}/{model.id}: {exc}"
        ) from exc
