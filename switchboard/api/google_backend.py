"""
Google Generative AI backend (``api = "google-generative-ai"``).

Calls ``models/{id}:generateContent`` with httpx.  Gemini requires the
first turn to be a user turn; the runner repairs that before we are called
(see ``switchboard.quirks``).
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog

from switchboard.api.base import ModelRequestError, Usage, message_text, register_backend
from switchboard.api.http import HttpModelBackend

logger = structlog.get_logger(__name__)

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# JSON Schema keywords the function-declaration schema rejects.
_UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties", "$id", "$ref", "definitions"})

_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
}


def clean_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            key: clean_schema(value)
            for key, value in schema.items()
            if key not in _UNSUPPORTED_SCHEMA_KEYS
        }
    if isinstance(schema, list):
        return [clean_schema(item) for item in schema]
    return schema


def to_google_contents(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        if role == "user":
            text = message_text(msg)
            if text:
                contents.append({"role": "user", "parts": [{"text": text}]})
        elif role == "assistant":
            parts: list[dict[str, Any]] = []
            for block in msg.get("content") or []:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text" and block.get("text"):
                    parts.append({"text": block["text"]})
                elif block.get("type") == "toolCall":
                    parts.append({
                        "functionCall": {
                            "name": block.get("name", ""),
                            "args": block.get("arguments") or {},
                        }
                    })
            if parts:
                contents.append({"role": "model", "parts": parts})
        elif role == "toolResult":
            response_key = "error" if msg.get("isError") else "output"
            part = {
                "functionResponse": {
                    "name": msg.get("toolName", ""),
                    "response": {response_key: message_text(msg)},
                }
            }
            previous = contents[-1] if contents else None
            if (
                previous is not None
                and previous["role"] == "user"
                and all("functionResponse" in p for p in previous["parts"])
            ):
                previous["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})
    return contents


class GoogleGenerativeAIBackend(HttpModelBackend):
    api = "google-generative-ai"
    default_base_url = GOOGLE_BASE_URL

    def _auth_headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._model.api_key or ""}

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: Optional[list] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contents": to_google_contents(messages),
            "generationConfig": {"maxOutputTokens": self._max_tokens},
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": clean_schema(tool.parameters),
                    }
                    for tool in tools
                ]
            }]

        payload = await self._post_json(f"/models/{self._model.id}:generateContent", body)
        candidates = payload.get("candidates") or []
        if not candidates:
            feedback = payload.get("promptFeedback") or {}
            raise ModelRequestError(
                f"google-generative-ai returned no candidates "
                f"(blockReason={feedback.get('blockReason', 'unknown')})"
            )
        candidate = candidates[0]

        content: list[dict[str, Any]] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "functionCall" in part:
                call = part["functionCall"] or {}
                content.append({
                    "type": "toolCall",
                    "id": call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                    "name": call.get("name", ""),
                    "arguments": call.get("args") or {},
                })
            elif part.get("thought") and part.get("text"):
                content.append({"type": "thinking", "thinking": part["text"]})
            elif part.get("text"):
                content.append({"type": "text", "text": part["text"]})

        meta = payload.get("usageMetadata") or {}
        cached = meta.get("cachedContentTokenCount", 0) or 0
        usage = Usage(
            input=max(0, (meta.get("promptTokenCount", 0) or 0) - cached),
            output=(meta.get("candidatesTokenCount", 0) or 0) + (meta.get("thoughtsTokenCount", 0) or 0),
            cache_read=cached,
        )
        if any(b["type"] == "toolCall" for b in content):
            stop_reason = "toolUse"
        else:
            stop_reason = _FINISH_REASONS.get(candidate.get("finishReason") or "STOP", "stop")
        return self._assistant_message(content, stop_reason, usage)


register_backend(GoogleGenerativeAIBackend.api, GoogleGenerativeAIBackend)
