"""Shared test fixtures and configuration."""

from __future__ import annotations

import contextlib

import httpx
import pytest

from chat_relay.config import RelayConfig
from tests.mocks.endpoints import (
    ANON_KEY,
    OPENAI_BASE_URL,
    SUPABASE_URL,
    FakeProvider,
    FakeSupabase,
)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Set default timeout for all tests."""
    for item in items:
        with contextlib.suppress(AttributeError):
            item.add_marker(pytest.mark.timeout(3))


@pytest.fixture
def supabase() -> FakeSupabase:
    """Fake store with one owned conversation."""
    return FakeSupabase()


@pytest.fixture
def provider() -> FakeProvider:
    """Fake completion provider."""
    return FakeProvider()


@pytest.fixture
def store_http(supabase: FakeSupabase) -> httpx.AsyncClient:
    """HTTP client wired to the fake store."""
    return httpx.AsyncClient(transport=httpx.MockTransport(supabase.handler))


@pytest.fixture
def upstream_http(provider: FakeProvider) -> httpx.AsyncClient:
    """HTTP client wired to the fake provider."""
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def relay_config() -> RelayConfig:
    """Config pointing at the fake endpoints."""
    return RelayConfig(
        openai_api_key="sk-test",
        openai_base_url=OPENAI_BASE_URL,
        supabase_url=SUPABASE_URL,
        supabase_anon_key=ANON_KEY,
    )
