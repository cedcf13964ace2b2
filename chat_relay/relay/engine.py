"""Per-turn orchestration: authenticate, assemble context, relay the stream, persist."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse, StreamingResponse

from chat_relay.constants import CORS_HEADERS, STREAM_HEADERS
from chat_relay.relay.auth import authenticate, require_authorization
from chat_relay.relay.context import assemble_context
from chat_relay.relay.errors import StreamFatalError
from chat_relay.relay.models import TurnState
from chat_relay.relay.persistence import finalize_turn, schedule_finalize
from chat_relay.relay.store import StoreClient
from chat_relay.relay.streaming import TeeRelay
from chat_relay.relay.upstream import UpstreamClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from chat_relay.config import RelayConfig
    from chat_relay.relay.models import ChatTurnRequest

logger = logging.getLogger("chat_relay.relay.engine")


@dataclass
class ChatTurn:
    """Mutable bookkeeping for a single request."""

    conversation_id: str
    state: TurnState = TurnState.INIT
    started_at: float = field(default_factory=perf_counter)
    history: list[TurnState] = field(default_factory=lambda: [TurnState.INIT])

    def advance(self, state: TurnState) -> None:
        """Record a state transition."""
        logger.debug(
            "Turn %s -> %s (conversation=%s)",
            self.state,
            state,
            self.conversation_id,
        )
        self.state = state
        self.history.append(state)

    def elapsed_ms(self) -> float:
        """Return elapsed milliseconds since the turn started."""
        return (perf_counter() - self.started_at) * 1000


def _relay_stream(
    upstream_response: httpx.Response,
    *,
    turn: ChatTurn,
    store: StoreClient,
    store_http: httpx.AsyncClient,
    config: RelayConfig,
    authorization: str,
) -> StreamingResponse:
    """Wrap the open upstream response in a tee that persists on clean completion."""
    relay = TeeRelay(
        api_mode=config.openai_api_mode,
        buffer_partial_lines=config.buffer_partial_lines,
    )

    async def tee_and_persist() -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in relay.relay(upstream_response.aiter_bytes()):
                yield chunk
        except StreamFatalError:
            turn.advance(TurnState.STREAM_ERROR)
            logger.exception(
                "Stream aborted after %d bytes (conversation=%s)",
                relay.bytes_relayed,
                turn.conversation_id,
            )
            raise
        finally:
            await upstream_response.aclose()

        turn.advance(TurnState.COMPLETED)
        logger.info(
            "Streaming response finished in %.1f ms (conversation=%s, bytes=%d, skipped=%d)",
            turn.elapsed_ms(),
            turn.conversation_id,
            relay.bytes_relayed,
            relay.accumulator.skipped_payloads,
        )
        schedule_finalize(
            store,
            store_http,
            functions_base_url=config.functions_base_url or "",
            conversation_id=turn.conversation_id,
            authorization=authorization,
            assistant_text=relay.accumulator.get_text(),
            enable_title_generation=config.enable_title_generation,
            advance=turn.advance,
        )

    return StreamingResponse(
        tee_and_persist(),
        status_code=200,
        media_type="text/event-stream",
        headers={**CORS_HEADERS, **STREAM_HEADERS},
    )


async def process_chat_turn(
    request: ChatTurnRequest,
    *,
    authorization: str | None,
    config: RelayConfig,
    store_http: httpx.AsyncClient,
    upstream_http: httpx.AsyncClient,
) -> StreamingResponse | JSONResponse:
    """Handle one chat turn.

    Errors raised before streaming starts (``AuthError``, ``PersistenceError``,
    ``UpstreamError``) propagate to the caller as regular error responses.
    """
    turn = ChatTurn(conversation_id=request.conversation_id)

    token = require_authorization(authorization)
    store = StoreClient(
        store_http,
        supabase_url=config.supabase_url,
        anon_key=config.supabase_anon_key,
        authorization=token,
    )
    user = await authenticate(store)
    turn.advance(TurnState.AUTHENTICATED)

    context = await assemble_context(
        store,
        conversation_id=request.conversation_id,
        user_text=request.user_text,
        user=user,
        history_limit=config.history_limit,
        memory_limit=config.memory_limit,
    )
    turn.advance(TurnState.USER_MSG_PERSISTED)

    upstream = UpstreamClient(upstream_http, config)
    stream = request.stream if request.stream is not None else config.chat_stream

    if not stream:
        text = await upstream.complete(context.messages)
        turn.advance(TurnState.COMPLETED)
        logger.info(
            "Completion finished in %.1f ms (conversation=%s, chars=%d)",
            turn.elapsed_ms(),
            turn.conversation_id,
            len(text),
        )
        if text.strip():
            await finalize_turn(
                store,
                store_http,
                functions_base_url=config.functions_base_url or "",
                conversation_id=turn.conversation_id,
                authorization=token,
                assistant_text=text.strip(),
                enable_title_generation=config.enable_title_generation,
                advance=turn.advance,
            )
        return JSONResponse({"text": text}, headers=CORS_HEADERS)

    upstream_response = await upstream.open_stream(context.messages)
    turn.advance(TurnState.STREAMING)
    logger.info(
        "Upstream stream opened in %.1f ms (conversation=%s)",
        turn.elapsed_ms(),
        turn.conversation_id,
    )
    return _relay_stream(
        upstream_response,
        turn=turn,
        store=store,
        store_http=store_http,
        config=config,
        authorization=token,
    )
