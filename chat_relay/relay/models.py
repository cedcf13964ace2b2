"""Relay data models.

Everything read from the store or the provider is modelled with optional
fields and validated before use; rows that do not fit are dropped rather than
trusted.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant", "system"]


class TurnState(StrEnum):
    """Lifecycle of one chat turn."""

    INIT = "init"
    AUTHENTICATED = "authenticated"
    USER_MSG_PERSISTED = "user_msg_persisted"
    STREAMING = "streaming"
    COMPLETED = "completed"
    STREAM_ERROR = "stream_error"
    ASSISTANT_MSG_PERSISTED = "assistant_msg_persisted"
    SUMMARY_DISPATCHED = "summary_dispatched"


class ChatTurnRequest(BaseModel):
    """Inbound body of a chat turn."""

    model_config = ConfigDict(extra="ignore")

    conversation_id: str
    user_text: str
    stream: bool | None = None

    @field_validator("conversation_id", "user_text")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "field must be non-empty"
            raise ValueError(msg)
        return v


class PromptMessage(BaseModel):
    """One entry of the prompt sent upstream."""

    role: Role
    content: str


class AuthenticatedUser(BaseModel):
    """Identity resolved from the forwarded authorization."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None


class MessageRow(BaseModel):
    """Row of the ``messages`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    conversation_id: str | None = None
    role: str | None = None
    content: str | None = None
    created_at: str | None = None

    def to_prompt_message(self) -> PromptMessage | None:
        """Return a prompt message, or None when the row is unusable."""
        if self.role not in ("user", "assistant", "system") or self.content is None:
            return None
        return PromptMessage(role=self.role, content=self.content)


class SummaryRow(BaseModel):
    """Row of the ``conversation_summaries`` table."""

    model_config = ConfigDict(extra="ignore")

    conversation_id: str | None = None
    summary: str | None = None
    updated_at: str | None = None


class Location(BaseModel):
    """Preferred location for care lookups."""

    model_config = ConfigDict(extra="ignore")

    city: str | None = None
    lat: float | None = None
    lng: float | None = None


class UserPreferences(BaseModel):
    """The ``data`` document of a ``user_preferences`` row."""

    model_config = ConfigDict(extra="ignore")

    nickname: str | None = None
    pronouns: str | None = None
    tone: str | None = None
    location: Location | None = None
    search_radius_km: float | None = None


class MemoryFact(BaseModel):
    """Row of the ``user_memories`` table."""

    model_config = ConfigDict(extra="ignore")

    fact: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    last_refreshed_at: str | None = None


class ConversationRow(BaseModel):
    """Row of the ``conversations`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    title: str | None = None


class ChunkDelta(BaseModel):
    """Incremental content of a chat-completions stream chunk."""

    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class ChunkChoice(BaseModel):
    """Single choice of a chat-completions stream chunk."""

    model_config = ConfigDict(extra="ignore")

    delta: ChunkDelta | None = None


class ChatCompletionChunk(BaseModel):
    """One ``data:`` payload of a chat-completions event stream."""

    model_config = ConfigDict(extra="ignore")

    choices: list[ChunkChoice] | None = None

    def content_token(self) -> str | None:
        """Return ``choices[0].delta.content`` if present."""
        if not self.choices:
            return None
        delta = self.choices[0].delta
        return delta.content if delta else None


class TurnContext(BaseModel):
    """Everything gathered from the store for one turn."""

    user_message: MessageRow
    history: list[PromptMessage]
    summary: str | None = None
    preferences: UserPreferences | None = None
    memories: list[MemoryFact] = Field(default_factory=list)
    messages: list[PromptMessage]
