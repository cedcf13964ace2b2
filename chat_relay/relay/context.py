"""Context assembly: persist the user turn, gather store context, build the prompt."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any, TypeVar

from chat_relay.relay.errors import PersistenceError, StoreError
from chat_relay.relay.models import PromptMessage, TurnContext
from chat_relay.relay.prompt import (
    DEVELOPER_PROMPT,
    FACTS_HEADER,
    MEMORIES_HEADER,
    SUMMARY_HEADER,
    SYSTEM_PROMPT,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from chat_relay.relay.models import (
        AuthenticatedUser,
        MemoryFact,
        MessageRow,
        UserPreferences,
    )
    from chat_relay.relay.store import StoreClient

logger = logging.getLogger("chat_relay.relay.context")

T = TypeVar("T")


def _elapsed_ms(start: float) -> float:
    """Return elapsed milliseconds since start."""
    return (perf_counter() - start) * 1000


def _plain_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _preference_lines(preferences: UserPreferences) -> list[str]:
    lines: list[str] = []
    if preferences.nickname:
        lines.append(f'User prefers to be called "{preferences.nickname}".')
    if preferences.pronouns:
        lines.append(f"User's pronouns: {preferences.pronouns}.")
    if preferences.tone:
        lines.append(f"User prefers a {preferences.tone} conversational tone.")
    location = preferences.location
    if location:
        if location.city:
            lines.append(f"User location: {location.city}.")
        elif location.lat is not None and location.lng is not None:
            lines.append(f"User location: ({location.lat:.4f}, {location.lng:.4f}).")
        if preferences.search_radius_km:
            lines.append(f"Preferred search radius: {_plain_number(preferences.search_radius_km)}km.")
    return lines


def _memory_line(memory: MemoryFact) -> str | None:
    fact = (memory.fact or "").strip()
    if not fact:
        return None
    if memory.confidence is None:
        return f"  - {fact}"
    return f"  - {fact} (confidence: {memory.confidence:.2f})"


def build_runtime_facts(
    preferences: UserPreferences | None,
    memories: Sequence[MemoryFact],
) -> str | None:
    """Render per-user facts, or None when there is nothing to say."""
    lines = _preference_lines(preferences) if preferences else []
    memory_lines = [line for line in map(_memory_line, memories) if line]
    if memory_lines:
        lines.append(MEMORIES_HEADER)
        lines.extend(memory_lines)
    if not lines:
        return None
    return FACTS_HEADER + "\n" + "\n".join(lines)


def build_prompt_messages(
    *,
    history: Sequence[PromptMessage],
    user_text: str,
    summary: str | None = None,
    runtime_facts: str | None = None,
) -> list[PromptMessage]:
    """Order: static instructions, summary, per-user facts, history, live user turn."""
    messages = [
        PromptMessage(role="system", content=SYSTEM_PROMPT),
        PromptMessage(role="system", content=DEVELOPER_PROMPT),
    ]
    if summary:
        messages.append(PromptMessage(role="system", content=f"{SUMMARY_HEADER}\n{summary}"))
    if runtime_facts:
        messages.append(PromptMessage(role="system", content=runtime_facts))
    messages.extend(history)
    messages.append(PromptMessage(role="user", content=user_text))
    return messages


def linearize_history(
    rows_newest_first: Sequence[MessageRow],
    *,
    limit: int,
    exclude_id: str | None = None,
) -> list[PromptMessage]:
    """Reverse newest-first rows into chronological prompt messages."""
    history: list[PromptMessage] = []
    for row in reversed(rows_newest_first[:limit]):
        if exclude_id is not None and row.id == exclude_id:
            continue
        message = row.to_prompt_message()
        if message is not None:
            history.append(message)
    return history


async def _optional_read(label: str, awaitable: Awaitable[T], default: T) -> T:
    """Await a context read; a failed read degrades to ``default``."""
    try:
        return await awaitable
    except StoreError:
        logger.warning("Context read %s failed; continuing without it", label, exc_info=True)
        return default


async def assemble_context(
    store: StoreClient,
    *,
    conversation_id: str,
    user_text: str,
    user: AuthenticatedUser,
    history_limit: int,
    memory_limit: int,
) -> TurnContext:
    """Persist the user's message, then build the ordered prompt for the turn.

    Raises ``PersistenceError`` when the user message cannot be written; in that
    case nothing else is read and no upstream call may follow.
    """
    write_start = perf_counter()
    try:
        user_row = await store.add_message(conversation_id, "user", user_text)
    except StoreError as exc:
        logger.exception("Error persisting user message (conversation=%s)", conversation_id)
        msg = "Failed to save message"
        raise PersistenceError(msg) from exc
    logger.info(
        "Persisted user message in %.1f ms (conversation=%s)",
        _elapsed_ms(write_start),
        conversation_id,
    )

    read_start = perf_counter()
    empty: list[Any] = []
    rows, summary_row, preferences, memories = await asyncio.gather(
        _optional_read("messages", store.recent_messages(conversation_id, history_limit), empty),
        _optional_read("summary", store.get_summary(conversation_id), None),
        _optional_read("preferences", store.get_preferences(user.id), None),
        _optional_read("memories", store.recent_memories(user.id, memory_limit), empty),
    )
    history = linearize_history(rows, limit=history_limit, exclude_id=user_row.id)
    summary = summary_row.summary if summary_row and summary_row.summary else None
    memories = memories[:memory_limit]
    runtime_facts = build_runtime_facts(preferences, memories)
    messages = build_prompt_messages(
        history=history,
        user_text=user_text,
        summary=summary,
        runtime_facts=runtime_facts,
    )
    logger.info(
        "Assembled context in %.1f ms (conversation=%s, history=%d, summary=%s, memories=%d)",
        _elapsed_ms(read_start),
        conversation_id,
        len(history),
        "yes" if summary else "no",
        len(memories),
    )
    return TurnContext(
        user_message=user_row,
        history=history,
        summary=summary,
        preferences=preferences,
        memories=memories,
        messages=messages,
    )
