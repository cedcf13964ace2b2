"""Client for the upstream OpenAI-compatible completion provider."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from chat_relay.relay.errors import UpstreamError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from chat_relay.config import RelayConfig
    from chat_relay.relay.models import PromptMessage

logger = logging.getLogger("chat_relay.relay.upstream")

# Status reported when the provider could not be reached at all.
_UNREACHABLE_STATUS = 502


def build_upstream_request(
    config: RelayConfig,
    messages: Sequence[PromptMessage],
    *,
    stream: bool,
) -> tuple[str, dict[str, Any]]:
    """Return the endpoint URL and JSON body for the configured API mode."""
    base_url = config.openai_base_url.rstrip("/")
    if config.openai_api_mode == "responses":
        transcript = "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)
        return f"{base_url}/responses", {
            "model": config.openai_chat_model,
            "input": transcript + "\nASSISTANT:",
            "stream": stream,
        }
    return f"{base_url}/chat/completions", {
        "model": config.openai_chat_model,
        "messages": [m.model_dump() for m in messages],
        "stream": stream,
    }


def _error_detail(body: bytes) -> str:
    """Best-effort human-readable message from a provider error body."""
    text = body.decode(errors="ignore")
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return text


def extract_completion_text(data: Mapping[str, Any], *, api_mode: str) -> str:
    """Return the assistant text of a non-streaming completion body."""
    if api_mode == "responses":
        if isinstance(data.get("output_text"), str):
            return data["output_text"]
        try:
            text = data["output"][0]["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""
        if isinstance(text, dict):
            text = text.get("value")
        return text if isinstance(text, str) else ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


class UpstreamClient:
    """Issues single, non-retried requests to the completion provider."""

    def __init__(self, http: httpx.AsyncClient, config: RelayConfig) -> None:
        self._http = http
        self._config = config

    @property
    def _headers(self) -> dict[str, str] | None:
        key = self._config.openai_api_key
        return {"Authorization": f"Bearer {key}"} if key else None

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = await response.aread()
        await response.aclose()
        logger.error("Upstream error %s: %s", response.status_code, body.decode(errors="ignore"))
        raise UpstreamError(response.status_code, _error_detail(body))

    async def open_stream(self, messages: Sequence[PromptMessage]) -> httpx.Response:
        """Start a streaming completion and return the open response.

        The caller owns the returned response and must close it. Raises
        ``UpstreamError`` with the provider's status when the request is rejected.
        """
        url, payload = build_upstream_request(self._config, messages, stream=True)
        logger.info(
            "Streaming completion from %s (model=%s, messages=%d)",
            url,
            self._config.openai_chat_model,
            len(messages),
        )
        request = self._http.build_request("POST", url, json=payload, headers=self._headers)
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.exception("Upstream request to %s failed", url)
            raise UpstreamError(_UNREACHABLE_STATUS, str(exc)) from exc
        await self._raise_for_status(response)
        return response

    async def complete(self, messages: Sequence[PromptMessage]) -> str:
        """Run a non-streaming completion and return the assistant text."""
        url, payload = build_upstream_request(self._config, messages, stream=False)
        logger.info("Requesting completion from %s (model=%s)", url, self._config.openai_chat_model)
        try:
            response = await self._http.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.exception("Upstream request to %s failed", url)
            raise UpstreamError(_UNREACHABLE_STATUS, str(exc)) from exc
        await self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(_UNREACHABLE_STATUS, "Upstream returned a non-JSON body") from exc
        if not isinstance(data, dict):
            return ""
        return extract_completion_text(data, api_mode=self._config.openai_api_mode)
