"""Config file loading and the runtime configuration model."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal

import typer
from pydantic import BaseModel, field_validator, model_validator

from chat_relay import constants
from chat_relay.core.utils import console

CONFIG_PATHS = (
    Path.home() / ".config" / "chat-relay" / "config.toml",
    Path("chat-relay-config.toml"),
)

ApiMode = Literal["chat", "responses"]

# RelayConfig field -> environment variable
_ENV_VARS = {
    "openai_api_key": "OPENAI_API_KEY",
    "openai_base_url": "OPENAI_BASE_URL",
    "openai_chat_model": "OPENAI_CHAT_MODEL",
    "openai_api_mode": "OPENAI_API_MODE",
    "chat_stream": "CHAT_STREAM",
    "supabase_url": "SUPABASE_URL",
    "supabase_anon_key": "SUPABASE_ANON_KEY",
    "functions_base_url": "SUPABASE_FUNCTIONS_URL",
}


def _underscore_keys(table: dict[str, Any]) -> dict[str, Any]:
    """Turn ``history-limit`` style keys into option names, nested tables included."""
    return {
        key.replace("-", "_"): _underscore_keys(value) if isinstance(value, dict) else value
        for key, value in table.items()
    }


def _find_config_file(config_path_str: str | None) -> Path | None:
    if config_path_str:
        return Path(config_path_str)
    return next((path for path in CONFIG_PATHS if path.exists()), None)


def load_config(config_path_str: str | None = None) -> dict[str, Any]:
    """Load the TOML config file, or return an empty mapping when there is none."""
    config_path = _find_config_file(config_path_str)
    if config_path is None:
        return {}
    if not config_path.exists():
        console.print(f"[bold red]Config file not found at {config_path}[/bold red]")
        return {}
    try:
        with config_path.open("rb") as f:
            return _underscore_keys(tomllib.load(f))
    except tomllib.TOMLDecodeError as e:
        console.print(f"[bold red]Error parsing config file {config_path}: {e}[/bold red]")
        return {}


class RelayConfig(BaseModel):
    """Process-wide settings, built once at startup and handed to each component."""

    openai_api_key: str | None = None
    openai_base_url: str = constants.DEFAULT_OPENAI_BASE_URL
    openai_chat_model: str = constants.DEFAULT_OPENAI_CHAT_MODEL
    openai_api_mode: ApiMode = "chat"
    chat_stream: bool = True
    request_timeout: float = constants.DEFAULT_REQUEST_TIMEOUT

    supabase_url: str
    supabase_anon_key: str
    functions_base_url: str | None = None
    store_timeout: float = constants.DEFAULT_STORE_TIMEOUT

    history_limit: int = constants.HISTORY_LIMIT
    memory_limit: int = constants.MEMORY_LIMIT
    buffer_partial_lines: bool = False
    enable_title_generation: bool = True

    @field_validator("openai_api_mode", mode="before")
    @classmethod
    def _lower_mode(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("supabase_url", "supabase_anon_key")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "field must be non-empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("history_limit", "memory_limit")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            msg = "limit must be at least 1"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _default_functions_url(self) -> RelayConfig:
        if not self.functions_base_url:
            self.functions_base_url = f"{self.supabase_url.rstrip('/')}/functions/v1"
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> RelayConfig:
        """Build the config from environment variables, then apply explicit overrides."""
        values: dict[str, Any] = {}
        for field_name, env_var in _ENV_VARS.items():
            value = os.environ.get(env_var)
            if value is None or value == "":
                continue
            if field_name == "chat_stream":
                values[field_name] = value.strip().lower() == "true"
            else:
                values[field_name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def set_config_defaults(ctx: typer.Context, config_file: str | None) -> str | None:
    """Set the default values for the command from the config file.

    Used as an eager option callback so the defaults are in place before the
    remaining options are resolved. ``[defaults]`` applies to every command and
    a section named after the command overrides it.
    """
    config = load_config(config_file)
    wildcard_config = config.get("defaults", {})
    subcommand = ctx.command.name
    command_config = config.get(subcommand, {}) if subcommand else {}
    ctx.default_map = {**(ctx.default_map or {}), **wildcard_config, **command_config}
    return config_file
