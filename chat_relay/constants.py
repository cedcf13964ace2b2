"""Default configuration settings for the chat relay."""

from __future__ import annotations

# --- Upstream Provider ---
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_CHAT_MODEL = "gpt-5-nano"
DEFAULT_OPENAI_API_MODE = "chat"
DEFAULT_REQUEST_TIMEOUT = 120.0

# --- Store ---
DEFAULT_STORE_TIMEOUT = 30.0
HISTORY_LIMIT = 20
MEMORY_LIMIT = 5

# --- Server ---
DEFAULT_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_PORT = 8787

# --- Event Stream ---
SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

# --- Conversations ---
PLACEHOLDER_TITLES = frozenset({"Untitled conversation", "New chat"})
MIN_MESSAGES_FOR_TITLE = 2

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}
