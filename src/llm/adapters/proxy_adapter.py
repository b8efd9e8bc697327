# src/llm/adapters/proxy_adapter.py — v1
"""EasyRead proxy adapter implementing BaseModelTransport.

Talks to the proxy over httpx. Status mapping:
  - transport failure      -> NetworkRetryable
  - 429 / 5xx              -> ProxyRetryable
  - other non-2xx          -> ProxyError (body truncated to 180 chars)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from easyread.core.errors import NetworkRetryable, ProxyError, ProxyRetryable
from easyread.llm.base_client import BaseModelTransport

logger = logging.getLogger(__name__)

EXPLAIN_PATH = "/api/explain"
MODERATE_PATH = "/api/moderate"
CLIENT_ID_HEADER = "X-EasyRead-Client-Id"
EXTENSION_ID_HEADER = "X-EasyRead-Extension-Id"
_DETAIL_LIMIT = 180


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After", "")
    try:
        return float(value)
    except ValueError:
        return None


class ProxyAdapter(BaseModelTransport):
    """HTTP client for the EasyRead proxy."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        extension_id: str = "",
        timeout_s: float = 45.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json", CLIENT_ID_HEADER: client_id}
        if extension_id:
            headers[EXTENSION_ID_HEADER] = extension_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return "proxy"

    async def post_responses(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._post_json(EXPLAIN_PATH, {"payload": payload})

    async def post_moderation(self, text: str) -> dict[str, Any]:
        return await self._post_json(MODERATE_PATH, {"text": text})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            logger.warning("Proxy request to %s failed: %s", path, e)
            raise NetworkRetryable("Network error while contacting EasyRead server.") from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise ProxyRetryable(
                f"EasyRead server temporary error ({status}).",
                status_code=status,
                retry_after_s=_retry_after(response),
            )
        if not response.is_success:
            detail = response.text[:_DETAIL_LIMIT]
            raise ProxyError(
                f"EasyRead server error ({status}). {detail}".strip(),
                status_code=status,
                detail=detail,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProxyError(
                f"EasyRead server error ({status}). Invalid JSON body.",
                status_code=status,
            ) from e
        if not isinstance(data, dict):
            raise ProxyError(
                f"EasyRead server error ({status}). Unexpected response shape.",
                status_code=status,
            )
        return data
