"""
OpenAI backends: Chat Completions (``openai-completions``) and Responses
(``openai-responses``).

Both talk to the REST endpoints directly with httpx, so they also serve the
many OpenAI-compatible servers configured with a custom ``baseUrl``.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog

from switchboard.api.base import ModelRequestError, Usage, message_text, register_backend
from switchboard.api.http import HttpModelBackend

logger = structlog.get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"

_FINISH_REASONS = {
    "stop": "stop",
    "tool_calls": "toolUse",
    "function_call": "toolUse",
    "length": "length",
}


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("openai_backend.bad_tool_arguments", raw=str(raw)[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


class _OpenAIBackend(HttpModelBackend):
    default_base_url = OPENAI_BASE_URL

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._model.api_key}"}


# ---------------------------------------------------------------------------
# Chat Completions
# ---------------------------------------------------------------------------


def to_chat_messages(system_prompt: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    if system_prompt:
        converted.append({"role": "system", "content": system_prompt})
    for msg in messages:
        role = msg.get("role")
        if role == "user":
            converted.append({"role": "user", "content": message_text(msg)})
        elif role == "assistant":
            entry: dict[str, Any] = {"role": "assistant", "content": message_text(msg) or None}
            calls = [
                {
                    "id": block.get("id", ""),
                    "type": "function",
                    "function": {
                        "name": block.get("name", ""),
                        "arguments": json.dumps(block.get("arguments") or {}),
                    },
                }
                for block in msg.get("content") or []
                if isinstance(block, dict) and block.get("type") == "toolCall"
            ]
            if calls:
                entry["tool_calls"] = calls
            if entry["content"] is None and not calls:
                continue
            converted.append(entry)
        elif role == "toolResult":
            converted.append({
                "role": "tool",
                "tool_call_id": msg.get("toolCallId", ""),
                "content": message_text(msg),
            })
    return converted


class OpenAICompletionsBackend(_OpenAIBackend):
    api = "openai-completions"

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model.id,
            "messages": to_chat_messages(system_prompt, messages),
            "max_tokens": self._max_tokens,
        }
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]

        payload = await self._post_json("/chat/completions", body)
        choices = payload.get("choices") or []
        if not choices:
            raise ModelRequestError("openai-completions returned no choices")
        choice = choices[0]
        message = choice.get("message") or {}

        content: list[dict[str, Any]] = []
        if message.get("reasoning_content"):
            content.append({"type": "thinking", "thinking": message["reasoning_content"]})
        if message.get("content"):
            content.append({"type": "text", "text": message["content"]})
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            content.append({
                "type": "toolCall",
                "id": call.get("id", ""),
                "name": function.get("name", ""),
                "arguments": _parse_arguments(function.get("arguments")),
            })

        raw_usage = payload.get("usage") or {}
        cached = (raw_usage.get("prompt_tokens_details") or {}).get("cached_tokens", 0) or 0
        usage = Usage(
            input=max(0, (raw_usage.get("prompt_tokens", 0) or 0) - cached),
            output=raw_usage.get("completion_tokens", 0) or 0,
            cache_read=cached,
        )
        stop_reason = _FINISH_REASONS.get(choice.get("finish_reason") or "", "stop")
        if any(b["type"] == "toolCall" for b in content):
            stop_reason = "toolUse"
        return self._assistant_message(content, stop_reason, usage)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def to_responses_input(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        if role == "user":
            items.append({
                "role": "user",
                "content": [{"type": "input_text", "text": message_text(msg)}],
            })
        elif role == "assistant":
            text = message_text(msg)
            if text:
                items.append({
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text}],
                })
            for block in msg.get("content") or []:
                if isinstance(block, dict) and block.get("type") == "toolCall":
                    items.append({
                        "type": "function_call",
                        "call_id": block.get("id", ""),
                        "name": block.get("name", ""),
                        "arguments": json.dumps(block.get("arguments") or {}),
                    })
        elif role == "toolResult":
            items.append({
                "type": "function_call_output",
                "call_id": msg.get("toolCallId", ""),
                "output": message_text(msg),
            })
    return items


class OpenAIResponsesBackend(_OpenAIBackend):
    api = "openai-responses"

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model.id,
            "input": to_responses_input(messages),
            "max_output_tokens": self._max_tokens,
            "store": False,
        }
        if system_prompt:
            body["instructions"] = system_prompt
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                }
                for tool in tools
            ]

        payload = await self._post_json("/responses", body)
        if payload.get("error"):
            raise ModelRequestError(f"openai-responses error: {payload['error']}")

        content: list[dict[str, Any]] = []
        for item in payload.get("output") or []:
            kind = item.get("type")
            if kind == "message":
                for part in item.get("content") or []:
                    if part.get("type") == "output_text" and part.get("text"):
                        content.append({"type": "text", "text": part["text"]})
            elif kind == "reasoning":
                summary = "\n".join(
                    s.get("text", "") for s in item.get("summary") or [] if s.get("text")
                )
                if summary:
                    content.append({"type": "thinking", "thinking": summary})
            elif kind == "function_call":
                content.append({
                    "type": "toolCall",
                    "id": item.get("call_id", ""),
                    "name": item.get("name", ""),
                    "arguments": _parse_arguments(item.get("arguments")),
                })

        raw_usage = payload.get("usage") or {}
        cached = (raw_usage.get("input_tokens_details") or {}).get("cached_tokens", 0) or 0
        usage = Usage(
            input=max(0, (raw_usage.get("input_tokens", 0) or 0) - cached),
            output=raw_usage.get("output_tokens", 0) or 0,
            cache_read=cached,
        )
        if any(b["type"] == "toolCall" for b in content):
            stop_reason = "toolUse"
        elif payload.get("status") == "incomplete":
            stop_reason = "length"
        else:
            stop_reason = "stop"
        return self._assistant_message(content, stop_reason, usage)


register_backend(OpenAICompletionsBackend.api, OpenAICompletionsBackend)
register_backend(OpenAIResponsesBackend.api, OpenAIResponsesBackend)
