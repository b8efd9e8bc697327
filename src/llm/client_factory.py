# src/llm/client_factory.py — v3
"""Factory: instantiate the model transport from settings."""

from __future__ import annotations

import logging

import httpx

from easyread.config.settings import Settings
from easyread.llm.base_client import BaseModelTransport

logger = logging.getLogger(__name__)


def create_transport(
    settings: Settings,
    client_id: str,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> BaseModelTransport:
    """Build the proxy adapter.

    Args:
        settings: Application settings (proxy URL, timeout, extension id).
        client_id: Anonymous client identifier sent with every call.
        http_transport: Optional httpx transport (tests use MockTransport).
    """
    from easyread.llm.adapters.proxy_adapter import ProxyAdapter

    logger.debug("Creating proxy transport: base_url=%s", settings.proxy_base_url)
    return ProxyAdapter(
        base_url=settings.proxy_base_url,
        client_id=client_id,
        extension_id=settings.extension_id,
        timeout_s=settings.proxy_timeout_s,
        transport=http_transport,
    )
