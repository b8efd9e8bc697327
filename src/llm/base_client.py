# src/llm/base_client.py — v2
"""Abstract transport to the model proxy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseModelTransport(ABC):
    """Unified interface for reaching the hosted model.

    Implementations raise the core error taxonomy (NetworkRetryable,
    ProxyRetryable, ProxyError) and never retry on their own.
    """

    @abstractmethod
    async def post_responses(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a Responses-API payload, return the provider JSON."""

    @abstractmethod
    async def post_moderation(self, text: str) -> dict[str, Any]:
        """Ask the proxy whether `text` is flagged."""

    async def aclose(self) -> None:
        """Release network resources."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Transport identifier (e.g. "proxy")."""
