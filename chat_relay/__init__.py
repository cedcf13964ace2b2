"""Streaming chat-turn relay between a chat client, a Supabase store, and an LLM provider."""

from __future__ import annotations

__version__ = "0.1.0"
