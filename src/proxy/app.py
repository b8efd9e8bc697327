# src/proxy/app.py — v1
"""FastAPI proxy between the coordinator and the model provider.

Routes:
  GET  /api/health    liveness check
  POST /api/explain   forwards a sanitised Responses-API payload
  POST /api/moderate  moderation check, fails open

Provider credentials never leave this service. Callers identify
themselves with X-EasyRead-Client-Id (rate limiting) and, when an
allow-list is configured, X-EasyRead-Extension-Id.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

import httpx
import openai
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from easyread.config.settings import ConfigurationError, ProxySettings
from easyread.proxy.payload import sanitize_payload
from easyread.proxy.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SERVICE_NAME = "easyread-proxy"
DEFAULT_ALLOWED_MODELS = ("gpt-5-nano", "gpt-5-mini")
CLIENT_ID_HEADER = "X-EasyRead-Client-Id"
EXTENSION_ID_HEADER = "X-EasyRead-Extension-Id"
NO_STORE = {"Cache-Control": "no-store"}
JSON_MEDIA_TYPE = "application/json; charset=utf-8"
_DETAIL_LIMIT = 2000


class BodyError(Exception):
    """Request body is oversized or not JSON."""


def _json(status_code: int, content: Any, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={**NO_STORE, **(headers or {})},
    )


def _allowed_models(settings: ProxySettings) -> list[str]:
    return settings.allowed_models_list or list(DEFAULT_ALLOWED_MODELS)


async def read_json_body(request: Request, max_bytes: int) -> Any:
    """Read the body incrementally, stopping as soon as it exceeds max_bytes."""
    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise BodyError("Request body too large")
        chunks.append(chunk)
    if size == 0:
        return {}
    try:
        return json.loads(b"".join(chunks).decode("utf-8"))
    except ValueError as e:
        raise BodyError("Invalid JSON body") from e


def create_app(
    settings: ProxySettings | None = None,
    openai_client: openai.AsyncOpenAI | None = None,
    clock: Callable[[], int] | None = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        settings: Proxy settings (loaded from the environment when None).
        openai_client: Pre-built client, mainly for tests. When None one is
            created from the settings and closed on shutdown.
        clock: Epoch-ms clock for the rate limiter.

    Raises:
        ConfigurationError: If no provider API key is configured.
    """
    settings = settings or ProxySettings()
    owns_client = openai_client is None
    if openai_client is None:
        if not settings.openai_api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY in environment.")
        openai_client = openai.AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_retries=0,
        )
    client = openai_client

    allowed_models = _allowed_models(settings)
    allowed_extensions = settings.allowed_extension_ids_list
    limiter_kwargs: dict[str, Any] = {} if clock is None else {"clock": clock}
    limiter = RateLimiter(
        window_ms=settings.rate_limit_window_ms,
        max_per_window=settings.rate_limit_max_per_window,
        max_per_day=settings.rate_limit_max_per_day,
        **limiter_kwargs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "EasyRead proxy ready (models=%s, allow-list=%d)",
            ",".join(allowed_models), len(allowed_extensions),
        )
        yield
        if owns_client:
            await client.close()

    app = FastAPI(title="EasyRead proxy", lifespan=lifespan)
    app.state.settings = settings
    app.state.rate_limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", CLIENT_ID_HEADER, EXTENSION_ID_HEADER],
    )

    def guard(request: Request) -> JSONResponse | None:
        """Allow-list and rate-limit checks shared by the POST routes."""
        if allowed_extensions:
            extension_id = request.headers.get(EXTENSION_ID_HEADER, "").strip()
            if not extension_id or extension_id not in allowed_extensions:
                return _json(403, {"error": "Extension is not allowed"})

        address = request.client.host if request.client else None
        decision = limiter.check(request.headers.get(CLIENT_ID_HEADER, ""), address)
        if not decision.ok:
            logger.info("Rate limit hit for %s", address)
            return _json(
                429,
                {"error": "Rate limit exceeded", "retryAfterSec": decision.retry_after_s},
                headers={"Retry-After": str(decision.retry_after_s)},
            )
        return None

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return _json(404, {"error": "Not found"})
        return _json(exc.status_code, {"error": str(exc.detail)})

    @app.get("/api/health")
    async def health():
        return _json(200, {"ok": True, "service": SERVICE_NAME})

    @app.post("/api/explain")
    async def explain(request: Request):
        rejected = guard(request)
        if rejected is not None:
            return rejected

        try:
            body = await read_json_body(request, settings.max_body_bytes)
        except BodyError as e:
            return _json(400, {"error": str(e)})

        payload = sanitize_payload(body.get("payload") if isinstance(body, dict) else None)
        if payload is None:
            return _json(400, {"error": "Missing payload object"})

        model = str(payload.get("model") or "").strip()
        if model not in allowed_models:
            return _json(
                400, {"error": f"Model is not allowed. Use {' or '.join(allowed_models)}."},
            )
        payload["model"] = model

        try:
            upstream = await client.post("/responses", body=payload, cast_to=httpx.Response)
        except openai.APIStatusError as e:
            logger.warning("Upstream responses call failed with %d", e.status_code)
            return _json(
                e.status_code,
                {
                    "error": f"OpenAI responses failed ({e.status_code})",
                    "detail": e.response.text[:_DETAIL_LIMIT],
                },
            )
        except openai.APIError as e:
            logger.warning("Upstream network error: %s", e)
            return _json(502, {"error": "Upstream network error"})

        return Response(
            content=upstream.text,
            status_code=200,
            media_type=JSON_MEDIA_TYPE,
            headers=NO_STORE,
        )

    @app.post("/api/moderate")
    async def moderate(request: Request):
        rejected = guard(request)
        if rejected is not None:
            return rejected

        try:
            body = await read_json_body(request, settings.max_body_bytes)
        except BodyError as e:
            return _json(400, {"error": str(e)})

        text = body.get("text") if isinstance(body, dict) else None
        text = str(text or "").strip()
        if not text:
            return _json(200, {"flagged": False})

        try:
            result = await client.moderations.create(
                model=settings.moderation_model, input=text,
            )
        except openai.APIError as e:
            logger.warning("Moderation failed, answering not flagged: %s", e)
            return _json(200, {"flagged": False})

        flagged = bool(result.results and result.results[0].flagged)
        return _json(200, {"flagged": flagged})

    return app
