"""FastAPI application factory for the chat relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from chat_relay.constants import CORS_HEADERS
from chat_relay.relay.engine import process_chat_turn
from chat_relay.relay.errors import (
    AuthError,
    PersistenceError,
    RelayError,
    StoreError,
    UpstreamError,
)
from chat_relay.relay.models import ChatTurnRequest  # noqa: TC001
from chat_relay.relay.tasks import pending_background_tasks, wait_for_background_tasks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chat_relay.config import RelayConfig

logger = logging.getLogger("chat_relay.relay.api")

CHAT_PATHS = ("/chat-stream", "/functions/v1/chat-stream")
_SHUTDOWN_GRACE_SECONDS = 10.0
PRE_STREAM_ERRORS = (AuthError, PersistenceError, StoreError, UpstreamError)


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=CORS_HEADERS)


def create_app(
    config: RelayConfig,
    *,
    store_http: httpx.AsyncClient | None = None,
    upstream_http: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    HTTP clients are created in the lifespan unless supplied by the caller, in
    which case the caller also owns closing them.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: list[httpx.AsyncClient] = []
        if app.state.store_http is None:
            app.state.store_http = httpx.AsyncClient(timeout=config.store_timeout)
            owned.append(app.state.store_http)
        if app.state.upstream_http is None:
            app.state.upstream_http = httpx.AsyncClient(timeout=config.request_timeout)
            owned.append(app.state.upstream_http)
        logger.info(
            "Chat relay ready (model=%s, api_mode=%s, store=%s)",
            config.openai_chat_model,
            config.openai_api_mode,
            config.supabase_url,
        )
        yield
        if pending_background_tasks():
            logger.info("Waiting for %d background task(s)...", pending_background_tasks())
            await wait_for_background_tasks(timeout=_SHUTDOWN_GRACE_SECONDS)
        for client in owned:
            await client.aclose()

    app = FastAPI(title="Chat Relay", lifespan=lifespan)
    app.state.config = config
    app.state.store_http = store_http
    app.state.upstream_http = upstream_http

    async def relay_error_handler(_request: Request, exc: RelayError) -> JSONResponse:
        return _error_response(exc.message, exc.status_code)

    # Only errors raised before the response starts; a StreamFatalError must
    # reach the server untouched so the chunked body is aborted.
    for error_cls in PRE_STREAM_ERRORS:
        app.add_exception_handler(error_cls, relay_error_handler)  # type: ignore[arg-type]

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error_response(f"Invalid request: {details}", 400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Chat stream error")
        return _error_response(str(exc), 500)

    async def chat_stream(request: Request, chat_request: ChatTurnRequest) -> Response:
        logger.info(
            "Chat turn received (conversation=%s, chars=%d, stream=%s)",
            chat_request.conversation_id,
            len(chat_request.user_text),
            chat_request.stream,
        )
        return await process_chat_turn(
            chat_request,
            authorization=request.headers.get("Authorization"),
            config=app.state.config,
            store_http=app.state.store_http,
            upstream_http=app.state.upstream_http,
        )

    async def preflight() -> PlainTextResponse:
        return PlainTextResponse("ok", headers=CORS_HEADERS)

    for path in CHAT_PATHS:
        app.add_api_route(path, chat_stream, methods=["POST"])
        app.add_api_route(path, preflight, methods=["OPTIONS"])

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "model": config.openai_chat_model,
            "api_mode": config.openai_api_mode,
            "store": config.supabase_url,
            "background_tasks": pending_background_tasks(),
        }

    return app
