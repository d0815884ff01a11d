"""Shared plumbing for backends that speak JSON over HTTP with httpx."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import structlog

from switchboard.api.base import ModelBackend, ModelBackendInitError, ModelRequestError
from switchboard.harness.retry import with_retries

logger = structlog.get_logger(__name__)


class HttpModelBackend(ModelBackend):
    """
    A backend that POSTs JSON to ``<base_url><path>``.

    ``transport`` is handed to ``httpx.AsyncClient``; tests pass an
    ``httpx.MockTransport`` there.
    """

    default_base_url: str = ""
    requires_api_key: bool = True

    def __init__(
        self,
        model,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ):
        super().__init__(model, **kwargs)
        base_url = (model.base_url or self.default_base_url).rstrip("/")
        if not base_url:
            raise ModelBackendInitError(f"Provider '{model.provider}' has no baseUrl")
        if self.requires_api_key and not model.api_key:
            raise ModelBackendInitError(
                f"No API key for provider '{model.provider}' "
                "(set apiKey in models config or the provider's *_API_KEY variable)"
            )
        self._base_url = base_url
        self._client = httpx.AsyncClient(
            headers=self._auth_headers(),
            timeout=self._request_timeout_seconds,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {}

    async def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}{path}"

        async def _send() -> httpx.Response:
            response = await asyncio.wait_for(
                self._client.post(url, json=body),
                timeout=self._request_timeout_seconds,
            )
            response.raise_for_status()
            return response

        try:
            response = await with_retries(_send, config=self._retry_config)
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:500]
            logger.error(
                "http_backend.status_error",
                api=self.api,
                status=e.response.status_code,
                model=self._model.id,
                detail=detail,
            )
            raise ModelRequestError(
                f"{self.api} request failed with HTTP {e.response.status_code}: {detail}",
                status_code=e.response.status_code,
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ModelRequestError(f"{self.api} returned a non-JSON response") from e
        if not isinstance(payload, dict):
            raise ModelRequestError(f"{self.api} returned an unexpected response shape")
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()
