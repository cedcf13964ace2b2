"""Tee relay: forward upstream event-stream bytes untouched while accumulating the reply text."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from chat_relay.constants import SSE_DATA_PREFIX, SSE_DONE_SENTINEL
from chat_relay.relay.errors import StreamDecodeError, StreamFatalError
from chat_relay.relay.models import ChatCompletionChunk

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterable

logger = logging.getLogger("chat_relay.relay.streaming")


@dataclass
class StreamAccumulator:
    """Reply text of one request, owned by the single relay processing it."""

    text_chunks: list[str] = field(default_factory=list)
    skipped_payloads: int = 0

    def append(self, token: str) -> None:
        """Append one content token in emission order."""
        self.text_chunks.append(token)

    def get_text(self) -> str | None:
        """Return accumulated text trimmed of surrounding whitespace, or None if empty."""
        text = "".join(self.text_chunks).strip()
        return text or None


def parse_event_line(line: str) -> Any | None:
    """Return the JSON payload of a ``data:`` line.

    Returns None for blank lines, non-data lines and the end-of-stream sentinel.
    Raises ``StreamDecodeError`` when the payload is not valid JSON.
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX) :].strip()
    if not payload or payload == SSE_DONE_SENTINEL:
        return None
    try:
        return json.loads(payload)
    except ValueError as exc:
        msg = f"Malformed stream payload: {payload[:80]!r}"
        raise StreamDecodeError(msg) from exc


def _responses_delta(payload: dict[str, Any]) -> str | None:
    """Text delta of a Responses API stream event."""
    if isinstance(payload.get("output_text_delta"), str):
        return payload["output_text_delta"]
    if isinstance(payload.get("delta"), str):
        return payload["delta"]
    try:
        value = payload["content"][0]["delta"]["text"]["value"]
    except (KeyError, IndexError, TypeError):
        return None
    return value if isinstance(value, str) else None


def extract_content(payload: Any, *, api_mode: str = "chat") -> str | None:
    """Return the incremental content token of a parsed payload, if present."""
    if not isinstance(payload, dict):
        msg = f"Unexpected stream payload type {type(payload).__name__}"
        raise StreamDecodeError(msg)
    if api_mode == "responses":
        return _responses_delta(payload)
    try:
        chunk = ChatCompletionChunk.model_validate(payload)
    except ValidationError as exc:
        msg = "Stream payload does not match the chat-completions chunk schema"
        raise StreamDecodeError(msg) from exc
    return chunk.content_token()


def decode_line(raw: bytes) -> str:
    """Decode one event-stream line as strict UTF-8."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = f"Stream line is not valid UTF-8: {raw[:80]!r}"
        raise StreamDecodeError(msg) from exc


def accumulate_line(line: bytes, accumulator: StreamAccumulator, *, api_mode: str = "chat") -> None:
    """Decode one event-stream line into the accumulator; malformed payloads are skipped."""
    try:
        payload = parse_event_line(decode_line(line))
        if payload is None:
            return
        token = extract_content(payload, api_mode=api_mode)
    except StreamDecodeError:
        accumulator.skipped_payloads += 1
        logger.debug("Skipping undecodable stream line: %r", line, exc_info=True)
        return
    if token:
        accumulator.append(token)


class ChunkLineDecoder:
    """Splits each chunk into lines on its own; a line cut by a chunk boundary is lost."""

    def feed(self, chunk: bytes) -> list[bytes]:
        """Return the lines of this chunk."""
        return chunk.split(b"\n")

    def flush(self) -> list[bytes]:
        """Nothing is carried between chunks."""
        return []


class BufferedLineDecoder:
    """Carries partial lines across chunk boundaries."""

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        """Return the lines completed by this chunk."""
        *lines, self._pending = (self._pending + chunk).split(b"\n")
        return lines

    def flush(self) -> list[bytes]:
        """Return the trailing unterminated line, if any."""
        tail, self._pending = self._pending, b""
        return [tail] if tail else []


class TeeRelay:
    """Relays one upstream byte stream to the caller and into its accumulator.

    One instance serves exactly one request; its accumulator is discarded with it.
    """

    def __init__(self, *, api_mode: str = "chat", buffer_partial_lines: bool = False) -> None:
        self.accumulator = StreamAccumulator()
        self.api_mode = api_mode
        self._decoder: ChunkLineDecoder | BufferedLineDecoder = (
            BufferedLineDecoder() if buffer_partial_lines else ChunkLineDecoder()
        )
        self.bytes_relayed = 0

    def process_chunk(self, chunk: bytes) -> None:
        """Decode a chunk and append its content tokens."""
        for line in self._decoder.feed(chunk):
            accumulate_line(line, self.accumulator, api_mode=self.api_mode)

    def finish(self) -> None:
        """Decode whatever the decoder still holds at end of data."""
        for line in self._decoder.flush():
            accumulate_line(line, self.accumulator, api_mode=self.api_mode)

    async def relay(self, chunks: AsyncIterable[bytes]) -> AsyncGenerator[bytes, None]:
        """Yield every chunk unchanged, decoding it before the next one is read.

        Any read failure is re-raised as ``StreamFatalError``.
        """
        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                self.bytes_relayed += len(chunk)
                yield chunk
                self.process_chunk(chunk)
        except Exception as exc:
            msg = f"Upstream stream failed: {exc}"
            raise StreamFatalError(msg) from exc
        self.finish()
