"""Tests for caller authentication."""

from __future__ import annotations

import httpx
import pytest

from chat_relay.relay.auth import authenticate, require_authorization
from chat_relay.relay.errors import AuthError
from chat_relay.relay.store import StoreClient
from tests.mocks.endpoints import ANON_KEY, SUPABASE_URL, VALID_AUTHORIZATION


@pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   ", "Basic abc", "token-only"])
def test_require_authorization_rejects(header: str | None) -> None:
    with pytest.raises(AuthError) as exc_info:
        require_authorization(header)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Unauthorized"


def test_require_authorization_returns_header() -> None:
    assert require_authorization("Bearer abc.def") == "Bearer abc.def"
    assert require_authorization("  bearer abc  ") == "bearer abc"


@pytest.mark.asyncio
async def test_authenticate_resolves_user(store_http: httpx.AsyncClient) -> None:
    store = StoreClient(
        store_http,
        supabase_url=SUPABASE_URL,
        anon_key=ANON_KEY,
        authorization=VALID_AUTHORIZATION,
    )
    user = await authenticate(store)
    assert user.id == "user-1"


@pytest.mark.asyncio
async def test_authenticate_propagates_rejection(store_http: httpx.AsyncClient) -> None:
    store = StoreClient(
        store_http,
        supabase_url=SUPABASE_URL,
        anon_key=ANON_KEY,
        authorization="Bearer revoked",
    )
    with pytest.raises(AuthError):
        await authenticate(store)


@pytest.mark.asyncio
async def test_authenticate_unreachable_store_is_unauthorized() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        msg = "timed out"
        raise httpx.ReadTimeout(msg, request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        store = StoreClient(
            http,
            supabase_url=SUPABASE_URL,
            anon_key=ANON_KEY,
            authorization=VALID_AUTHORIZATION,
        )
        with pytest.raises(AuthError):
            await authenticate(store)
