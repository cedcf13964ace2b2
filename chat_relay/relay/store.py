"""Supabase store access over its REST (PostgREST) and auth (GoTrue) HTTP APIs.

Every request carries the caller's forwarded ``Authorization`` header so the
store's row-level security applies to the acting user.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from chat_relay.relay.errors import AuthError, StoreError
from chat_relay.relay.models import (
    AuthenticatedUser,
    ConversationRow,
    MemoryFact,
    MessageRow,
    SummaryRow,
    UserPreferences,
)

logger = logging.getLogger("chat_relay.relay.store")


def _validate_rows(model: type[Any], rows: Any, *, table: str) -> list[Any]:
    """Validate each row independently, dropping the ones that do not fit."""
    if not isinstance(rows, list):
        msg = f"Unexpected {table} payload: {type(rows).__name__}"
        raise StoreError(msg)
    valid = []
    for row in rows:
        try:
            valid.append(model.model_validate(row))
        except ValidationError:
            logger.warning("Dropping malformed %s row: %r", table, row)
    return valid


class StoreClient:
    """Store operations bound to one caller's authorization."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        supabase_url: str,
        anon_key: str,
        authorization: str,
    ) -> None:
        self._http = http
        self._base_url = supabase_url.rstrip("/")
        self._headers = {"apikey": anon_key, "Authorization": authorization}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers={**self._headers, **(headers or {})},
            )
        except httpx.HTTPError as exc:
            msg = f"Store request {method} {path} failed: {exc}"
            raise StoreError(msg) from exc
        if response.status_code >= 400:  # noqa: PLR2004
            msg = f"Store request {method} {path} returned {response.status_code}: {response.text}"
            raise StoreError(msg)
        return response

    async def _select(self, table: str, params: dict[str, str]) -> Any:
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        try:
            return response.json()
        except ValueError as exc:
            msg = f"Store returned non-JSON body for {table}"
            raise StoreError(msg) from exc

    async def get_user(self) -> AuthenticatedUser:
        """Resolve the caller's identity from the forwarded token."""
        try:
            response = await self._http.get(f"{self._base_url}/auth/v1/user", headers=self._headers)
        except httpx.HTTPError as exc:
            msg = f"Identity lookup failed: {exc}"
            raise AuthError(msg) from exc
        if response.status_code != 200:  # noqa: PLR2004
            msg = "Unauthorized"
            raise AuthError(msg)
        try:
            return AuthenticatedUser.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            msg = "Unauthorized"
            raise AuthError(msg) from exc

    async def add_message(self, conversation_id: str, role: str, content: str) -> MessageRow:
        """Insert a message via the ``add_message`` RPC and return the created row."""
        response = await self._request(
            "POST",
            "/rest/v1/rpc/add_message",
            json={
                "p_conversation_id": conversation_id,
                "p_role": role,
                "p_content": content,
            },
        )
        try:
            body = response.json()
        except ValueError as exc:
            msg = "add_message returned a non-JSON body"
            raise StoreError(msg) from exc
        if isinstance(body, list):
            body = body[0] if body else None
        if not isinstance(body, dict) or body.get("id") is None:
            # The RPC yields nothing when the caller does not own the conversation.
            msg = f"add_message created no row for conversation {conversation_id}"
            raise StoreError(msg)
        return MessageRow.model_validate(body)

    async def recent_messages(self, conversation_id: str, limit: int) -> list[MessageRow]:
        """Return the newest ``limit`` messages, newest first."""
        rows = await self._select(
            "messages",
            {
                "select": "id,role,content,created_at",
                "conversation_id": f"eq.{conversation_id}",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        return _validate_rows(MessageRow, rows, table="messages")

    async def get_summary(self, conversation_id: str) -> SummaryRow | None:
        """Return the rolling summary row, if any."""
        rows = await self._select(
            "conversation_summaries",
            {
                "select": "summary,updated_at",
                "conversation_id": f"eq.{conversation_id}",
                "limit": "1",
            },
        )
        valid = _validate_rows(SummaryRow, rows, table="conversation_summaries")
        return valid[0] if valid else None

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        """Return the user's preference document, if any."""
        rows = await self._select(
            "user_preferences",
            {"select": "data", "user_id": f"eq.{user_id}", "limit": "1"},
        )
        if not isinstance(rows, list) or not rows:
            return None
        data = rows[0].get("data") if isinstance(rows[0], dict) else None
        if not isinstance(data, dict):
            return None
        try:
            return UserPreferences.model_validate(data)
        except ValidationError:
            logger.warning("Ignoring malformed preferences for user %s", user_id)
            return None

    async def recent_memories(self, user_id: str, limit: int) -> list[MemoryFact]:
        """Return the most recently refreshed memory facts."""
        rows = await self._select(
            "user_memories",
            {
                "select": "fact,confidence,last_refreshed_at",
                "user_id": f"eq.{user_id}",
                "order": "last_refreshed_at.desc",
                "limit": str(limit),
            },
        )
        return _validate_rows(MemoryFact, rows, table="user_memories")

    async def get_conversation(self, conversation_id: str) -> ConversationRow | None:
        """Return the conversation row, if visible to the caller."""
        rows = await self._select(
            "conversations",
            {"select": "id,title", "id": f"eq.{conversation_id}", "limit": "1"},
        )
        valid = _validate_rows(ConversationRow, rows, table="conversations")
        return valid[0] if valid else None

    async def count_messages(self, conversation_id: str) -> int:
        """Return the number of messages in a conversation."""
        response = await self._request(
            "GET",
            "/rest/v1/messages",
            params={"select": "id", "conversation_id": f"eq.{conversation_id}", "limit": "1"},
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        if not total.isdigit():
            msg = f"Missing message count in content-range {content_range!r}"
            raise StoreError(msg)
        return int(total)
