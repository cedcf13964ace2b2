"""Tests for assistant-turn persistence and the detached follow-up triggers."""

from __future__ import annotations

import logging
from typing import Any

import httpx
import pytest

from chat_relay.relay import tasks
from chat_relay.relay.errors import DetachedOperationError
from chat_relay.relay.models import TurnState
from chat_relay.relay.persistence import (
    dispatch_summary_refresh,
    finalize_turn,
    needs_title,
    persist_assistant_turn,
    schedule_finalize,
)
from chat_relay.relay.store import StoreClient
from tests.mocks.endpoints import ANON_KEY, SUPABASE_URL, VALID_AUTHORIZATION, FakeSupabase

FUNCTIONS_URL = f"{SUPABASE_URL}/functions/v1"


def _store(http: httpx.AsyncClient) -> StoreClient:
    return StoreClient(
        http,
        supabase_url=SUPABASE_URL,
        anon_key=ANON_KEY,
        authorization=VALID_AUTHORIZATION,
    )


async def _finalize(http: httpx.AsyncClient, text: str | None, **kwargs: Any) -> None:
    schedule_finalize(
        _store(http),
        http,
        functions_base_url=FUNCTIONS_URL,
        conversation_id="conv-1",
        authorization=VALID_AUTHORIZATION,
        assistant_text=text,
        **kwargs,
    )
    await tasks.wait_for_background_tasks()


@pytest.mark.asyncio
async def test_persist_assistant_turn(supabase: FakeSupabase, store_http: httpx.AsyncClient) -> None:
    row = await persist_assistant_turn(_store(store_http), "conv-1", "I hear you.")
    assert row is not None
    assert supabase.messages_for("conv-1", "assistant")[0]["content"] == "I hear you."


@pytest.mark.asyncio
async def test_persist_assistant_turn_failure_is_logged(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
    caplog: pytest.LogCaptureFixture,
) -> None:
    supabase.failing_roles.add("assistant")
    with caplog.at_level(logging.ERROR, logger="chat_relay.relay.persistence"):
        row = await persist_assistant_turn(_store(store_http), "conv-1", "I hear you.")
    assert row is None
    assert "Failed to persist assistant message" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, ""])
async def test_empty_reply_writes_and_triggers_nothing(
    text: str | None,
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    await _finalize(store_http, text)
    assert supabase.messages == []
    assert supabase.function_calls == []
    assert supabase.requests == []


@pytest.mark.asyncio
async def test_finalize_persists_once_and_dispatches_summary(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    supabase.seed_message("conv-1", "user", "hello")
    await _finalize(store_http, "I hear you.", enable_title_generation=False)

    assistant_rows = supabase.messages_for("conv-1", "assistant")
    assert [r["content"] for r in assistant_rows] == ["I hear you."]
    assert supabase.function_calls == [("summarize", {"conversation_id": "conv-1"})]
    summarize = next(r for r in supabase.requests if r.url.path.endswith("/summarize"))
    assert summarize.headers["Authorization"] == VALID_AUTHORIZATION


@pytest.mark.asyncio
async def test_summary_dispatched_even_when_assistant_write_fails(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    supabase.failing_roles.add("assistant")
    await _finalize(store_http, "I hear you.")
    assert supabase.messages_for("conv-1", "assistant") == []
    assert [name for name, _ in supabase.function_calls] == ["summarize"]


@pytest.mark.asyncio
async def test_title_generation_for_placeholder_title(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    supabase.seed_message("conv-1", "user", "hello")
    await _finalize(store_http, "Hi, I'm here.")
    assert sorted(name for name, _ in supabase.function_calls) == ["generate-title", "summarize"]


@pytest.mark.asyncio
async def test_no_title_generation_when_titled(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    supabase.conversations["conv-1"]["title"] = "Sleep troubles"
    supabase.seed_message("conv-1", "user", "hello")
    await _finalize(store_http, "Hi, I'm here.")
    assert [name for name, _ in supabase.function_calls] == ["summarize"]


@pytest.mark.asyncio
async def test_needs_title(supabase: FakeSupabase, store_http: httpx.AsyncClient) -> None:
    store = _store(store_http)
    supabase.seed_message("conv-1", "user", "hello")
    assert await needs_title(store, "conv-1") is False
    supabase.seed_message("conv-1", "assistant", "hi")
    assert await needs_title(store, "conv-1") is True
    supabase.conversations["conv-1"]["title"] = "   "
    assert await needs_title(store, "conv-1") is True
    supabase.conversations["conv-1"]["title"] = "Work stress"
    assert await needs_title(store, "conv-1") is False


@pytest.mark.asyncio
async def test_dispatch_failure_raises_for_the_background_sink(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    supabase.function_status = 503
    with pytest.raises(DetachedOperationError, match="503"):
        await dispatch_summary_refresh(
            store_http,
            functions_base_url=FUNCTIONS_URL + "/",
            conversation_id="conv-1",
            authorization=VALID_AUTHORIZATION,
        )


@pytest.mark.asyncio
async def test_detached_posts_carry_no_client_timeout(supabase: FakeSupabase) -> None:
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(supabase.handler),
        timeout=30.0,
    ) as http:
        supabase.seed_message("conv-1", "user", "hello")
        await _finalize(http, "I hear you.")

    posts = [r for r in supabase.requests if "/functions/v1/" in r.url.path]
    assert sorted(r.url.path.rsplit("/", 1)[-1] for r in posts) == ["generate-title", "summarize"]
    unlimited = {"connect": None, "read": None, "write": None, "pool": None}
    assert all(r.extensions["timeout"] == unlimited for r in posts)


@pytest.mark.asyncio
async def test_detached_failures_are_logged_only(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
    caplog: pytest.LogCaptureFixture,
) -> None:
    supabase.seed_message("conv-1", "user", "hello")
    supabase.function_status = 500
    with caplog.at_level(logging.ERROR, logger="chat_relay.relay.tasks"):
        await finalize_turn(
            _store(store_http),
            store_http,
            functions_base_url=FUNCTIONS_URL,
            conversation_id="conv-1",
            authorization=VALID_AUTHORIZATION,
            assistant_text="Still here.",
        )
        await tasks.wait_for_background_tasks()

    assert supabase.messages_for("conv-1", "assistant")[0]["content"] == "Still here."
    assert "Background task summarize-conv-1 failed" in caplog.text
    assert "Background task title-conv-1 failed" in caplog.text


@pytest.mark.asyncio
async def test_finalize_reports_reached_states(
    supabase: FakeSupabase,
    store_http: httpx.AsyncClient,
) -> None:
    reached: list[TurnState] = []
    await _finalize(store_http, "I hear you.", advance=reached.append)
    assert reached == [TurnState.ASSISTANT_MSG_PERSISTED, TurnState.SUMMARY_DISPATCHED]

    reached.clear()
    supabase.failing_roles.add("assistant")
    await _finalize(store_http, "I hear you.", advance=reached.append)
    assert reached == [TurnState.SUMMARY_DISPATCHED]
