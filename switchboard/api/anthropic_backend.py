"""
Anthropic Messages backend (``api = "anthropic-messages"``).

Uses the official SDK.  SDK-level retries are disabled so that every retry
goes through ``with_retries`` and is visible in the logs.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import anthropic
import structlog

from switchboard.api.base import (
    ModelBackend,
    ModelBackendInitError,
    Usage,
    register_backend,
)
from switchboard.harness.retry import with_retries

logger = structlog.get_logger(__name__)

_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "toolUse",
    "max_tokens": "length",
}


def _text_blocks(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    blocks = []
    for block in content or []:
        if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
            blocks.append({"type": "text", "text": block["text"]})
    return blocks


def _tool_result_text(message: dict[str, Any]) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    return "\n".join(b.get("text", "") for b in _text_blocks(content))


def to_anthropic_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Convert internal messages to Messages API turns.

    Tool results become ``tool_result`` blocks inside a user turn; consecutive
    results share one turn, which is what the API expects after a multi-tool
    assistant turn.  Thinking blocks are dropped: they cannot be replayed
    without their signatures.
    """
    converted: list[dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        if role == "user":
            blocks = _text_blocks(msg.get("content"))
            if blocks:
                converted.append({"role": "user", "content": blocks})
        elif role == "assistant":
            blocks = []
            for block in msg.get("content") or []:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text" and block.get("text"):
                    blocks.append({"type": "text", "text": block["text"]})
                elif block.get("type") == "toolCall":
                    blocks.append({
                        "type": "tool_use",
                        "id": block.get("id", ""),
                        "name": block.get("name", ""),
                        "input": block.get("arguments") or {},
                    })
            if blocks:
                converted.append({"role": "assistant", "content": blocks})
        elif role == "toolResult":
            result_block = {
                "type": "tool_result",
                "tool_use_id": msg.get("toolCallId", ""),
                "content": _tool_result_text(msg),
                "is_error": bool(msg.get("isError")),
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(result_block)
            else:
                converted.append({"role": "user", "content": [result_block]})
    return converted


class AnthropicMessagesBackend(ModelBackend):
    api = "anthropic-messages"

    def __init__(self, model, **kwargs: Any):
        super().__init__(model, **kwargs)
        if not model.api_key:
            raise ModelBackendInitError(
                f"No API key for provider '{model.provider}' "
                "(set apiKey in models config or the provider's *_API_KEY variable)"
            )
        client_kwargs: dict[str, Any] = {"api_key": model.api_key, "max_retries": 0}
        if model.base_url:
            client_kwargs["base_url"] = model.base_url
        self._client = anthropic.AsyncAnthropic(**client_kwargs)

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list] = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model.id,
            "max_tokens": self._max_tokens,
            "messages": to_anthropic_messages(messages),
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in tools
            ]

        async def _create() -> Any:
            return await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._request_timeout_seconds,
            )

        try:
            response = await with_retries(_create, config=self._retry_config)
        except anthropic.APIError as e:
            logger.error(
                "anthropic_backend.api_error",
                error=str(e),
                status=getattr(e, "status_code", None),
                model=self._model.id,
            )
            raise

        content: list[dict[str, Any]] = []
        for block in response.content:
            if block.type == "text":
                content.append({"type": "text", "text": block.text})
            elif block.type == "thinking":
                content.append({"type": "thinking", "thinking": block.thinking})
            elif block.type == "tool_use":
                arguments = block.input
                if isinstance(arguments, str):
                    arguments = json.loads(arguments or "{}")
                content.append({
                    "type": "toolCall",
                    "id": block.id,
                    "name": block.name,
                    "arguments": arguments or {},
                })

        usage = Usage(
            input=response.usage.input_tokens or 0,
            output=response.usage.output_tokens or 0,
            cache_read=getattr(response.usage, "cache_read_input_tokens", 0) or 0,
            cache_write=getattr(response.usage, "cache_creation_input_tokens", 0) or 0,
        )
        logger.debug(
            "anthropic_backend.complete",
            model=self._model.id,
            stop_reason=response.stop_reason,
            input_tokens=usage.input,
            output_tokens=usage.output,
        )
        return self._assistant_message(
            content,
            _STOP_REASONS.get(response.stop_reason or "", "stop"),
            usage,
        )

    async def aclose(self) -> None:
        await self._client.close()


register_backend(AnthropicMessagesBackend.api, AnthropicMessagesBackend)
