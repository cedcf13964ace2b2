"""Post-stream persistence of the assistant turn and detached collaborator triggers."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import TYPE_CHECKING

import httpx

from chat_relay.constants import MIN_MESSAGES_FOR_TITLE, PLACEHOLDER_TITLES
from chat_relay.relay.errors import DetachedOperationError, StoreError
from chat_relay.relay.models import TurnState
from chat_relay.relay.tasks import run_in_background

if TYPE_CHECKING:
    from collections.abc import Callable

    from chat_relay.relay.models import MessageRow
    from chat_relay.relay.store import StoreClient

logger = logging.getLogger("chat_relay.relay.persistence")


def _elapsed_ms(start: float) -> float:
    """Return elapsed milliseconds since start."""
    return (perf_counter() - start) * 1000


async def persist_assistant_turn(
    store: StoreClient,
    conversation_id: str,
    assistant_text: str,
) -> MessageRow | None:
    """Write the assistant message; a failure is logged and reported as None."""
    start = perf_counter()
    try:
        row = await store.add_message(conversation_id, "assistant", assistant_text)
    except StoreError:
        logger.exception("Failed to persist assistant message (conversation=%s)", conversation_id)
        return None
    logger.info(
        "Persisted assistant message in %.1f ms (conversation=%s, chars=%d)",
        _elapsed_ms(start),
        conversation_id,
        len(assistant_text),
    )
    return row


async def _post_to_function(
    http: httpx.AsyncClient,
    url: str,
    *,
    conversation_id: str,
    authorization: str,
) -> None:
    response = await http.post(
        url,
        json={"conversation_id": conversation_id},
        headers={"Authorization": authorization, "Content-Type": "application/json"},
        timeout=None,
    )
    if not response.is_success:
        msg = f"{url} returned {response.status_code}: {response.text}"
        raise DetachedOperationError(msg)


async def dispatch_summary_refresh(
    http: httpx.AsyncClient,
    *,
    functions_base_url: str,
    conversation_id: str,
    authorization: str,
) -> None:
    """Ask the summarizer to refresh the rolling summary of a conversation."""
    await _post_to_function(
        http,
        f"{functions_base_url.rstrip('/')}/summarize",
        conversation_id=conversation_id,
        authorization=authorization,
    )
    logger.info("Summary refresh dispatched (conversation=%s)", conversation_id)


async def needs_title(store: StoreClient, conversation_id: str) -> bool:
    """True when the conversation still has a placeholder title after a full exchange."""
    conversation = await store.get_conversation(conversation_id)
    title = (conversation.title or "").strip() if conversation else ""
    if title and title not in PLACEHOLDER_TITLES:
        return False
    return await store.count_messages(conversation_id) >= MIN_MESSAGES_FOR_TITLE


async def dispatch_title_generation(
    store: StoreClient,
    http: httpx.AsyncClient,
    *,
    functions_base_url: str,
    conversation_id: str,
    authorization: str,
) -> None:
    """Trigger title generation when the conversation still needs a title."""
    if not await needs_title(store, conversation_id):
        return
    await _post_to_function(
        http,
        f"{functions_base_url.rstrip('/')}/generate-title",
        conversation_id=conversation_id,
        authorization=authorization,
    )
    logger.info("Title generation dispatched (conversation=%s)", conversation_id)


async def finalize_turn(
    store: StoreClient,
    http: httpx.AsyncClient,
    *,
    functions_base_url: str,
    conversation_id: str,
    authorization: str,
    assistant_text: str,
    enable_title_generation: bool = True,
    advance: Callable[[TurnState], None] | None = None,
) -> None:
    """Persist the assistant turn, then detach the summary and title triggers.

    ``advance`` receives each turn state reached along the way.
    """
    row = await persist_assistant_turn(store, conversation_id, assistant_text)
    if row is not None and advance is not None:
        advance(TurnState.ASSISTANT_MSG_PERSISTED)
    run_in_background(
        dispatch_summary_refresh(
            http,
            functions_base_url=functions_base_url,
            conversation_id=conversation_id,
            authorization=authorization,
        ),
        label=f"summarize-{conversation_id}",
    )
    if advance is not None:
        advance(TurnState.SUMMARY_DISPATCHED)
    if enable_title_generation and row is not None:
        run_in_background(
            dispatch_title_generation(
                store,
                http,
                functions_base_url=functions_base_url,
                conversation_id=conversation_id,
                authorization=authorization,
            ),
            label=f"title-{conversation_id}",
        )


def schedule_finalize(
    store: StoreClient,
    http: httpx.AsyncClient,
    *,
    functions_base_url: str,
    conversation_id: str,
    authorization: str,
    assistant_text: str | None,
    enable_title_generation: bool = True,
    advance: Callable[[TurnState], None] | None = None,
) -> None:
    """Detach ``finalize_turn``; an empty reply writes nothing and triggers nothing."""
    if not assistant_text:
        logger.info("Empty assistant reply; skipping persistence (conversation=%s)", conversation_id)
        return
    run_in_background(
        finalize_turn(
            store,
            http,
            functions_base_url=functions_base_url,
            conversation_id=conversation_id,
            authorization=authorization,
            assistant_text=assistant_text,
            enable_title_generation=enable_title_generation,
            advance=advance,
        ),
        label=f"finalize-{conversation_id}",
    )
