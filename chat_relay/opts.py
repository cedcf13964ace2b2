"""Shared CLI options for the relay commands."""

from __future__ import annotations

import typer

from chat_relay import constants
from chat_relay.config import set_config_defaults

# --- Server Options ---
SERVER_HOST = typer.Option(
    constants.DEFAULT_HOST,
    "--host",
    help="Host to bind the server to.",
    rich_help_panel="Server Configuration",
)
SERVER_PORT = typer.Option(
    constants.DEFAULT_PORT,
    "--port",
    help="Port to bind the server to.",
    rich_help_panel="Server Configuration",
)

# --- Provider Options ---
OPENAI_BASE_URL = typer.Option(
    None,
    "--openai-base-url",
    help="Base URL of the OpenAI-compatible provider. Defaults to $OPENAI_BASE_URL or OpenAI.",
    rich_help_panel="Provider Configuration",
)
OPENAI_API_KEY = typer.Option(
    None,
    "--openai-api-key",
    help="Provider API key. Defaults to $OPENAI_API_KEY.",
    rich_help_panel="Provider Configuration",
)
MODEL = typer.Option(
    None,
    "--model",
    help=f"Chat model to request. Defaults to $OPENAI_CHAT_MODEL or {constants.DEFAULT_OPENAI_CHAT_MODEL}.",
    rich_help_panel="Provider Configuration",
)
API_MODE = typer.Option(
    None,
    "--api-mode",
    help="Provider API flavour: 'chat' (chat completions) or 'responses'.",
    rich_help_panel="Provider Configuration",
)

# --- Store Options ---
SUPABASE_URL = typer.Option(
    None,
    "--supabase-url",
    help="Base URL of the Supabase project. Defaults to $SUPABASE_URL.",
    rich_help_panel="Store Configuration",
)
SUPABASE_ANON_KEY = typer.Option(
    None,
    "--supabase-anon-key",
    help="Public anon key of the Supabase project. Defaults to $SUPABASE_ANON_KEY.",
    rich_help_panel="Store Configuration",
)
FUNCTIONS_BASE_URL = typer.Option(
    None,
    "--functions-base-url",
    help="Base URL of the summarize/generate-title functions. Defaults to <supabase-url>/functions/v1.",
    rich_help_panel="Store Configuration",
)

# --- Context Options ---
HISTORY_LIMIT = typer.Option(
    constants.HISTORY_LIMIT,
    "--history-limit",
    help="Number of recent messages included in the prompt.",
    rich_help_panel="Context Configuration",
)
MEMORY_LIMIT = typer.Option(
    constants.MEMORY_LIMIT,
    "--memory-limit",
    help="Number of long-term memory facts included in the prompt.",
    rich_help_panel="Context Configuration",
)
BUFFER_PARTIAL_LINES = typer.Option(
    False,  # noqa: FBT003
    "--buffer-partial-lines/--no-buffer-partial-lines",
    help="Reassemble event-stream lines split across network chunks before decoding.",
    rich_help_panel="Context Configuration",
)
TITLE_GENERATION = typer.Option(
    True,  # noqa: FBT003
    "--title-generation/--no-title-generation",
    help="Trigger title generation for conversations that still have a placeholder title.",
    rich_help_panel="Context Configuration",
)

# --- General Options ---
LOG_LEVEL = typer.Option(
    "INFO",
    "--log-level",
    help="Set the log level (e.g., DEBUG, INFO, WARNING).",
    rich_help_panel="General Options",
)
CONFIG_FILE = typer.Option(
    None,
    "--config",
    help="Path to a custom config file.",
    callback=set_config_defaults,
    is_eager=True,
    rich_help_panel="General Options",
)
PRINT_ARGS = typer.Option(
    False,  # noqa: FBT003
    "--print-args",
    help="Print the command line arguments, including variables taken from the configuration file.",
    rich_help_panel="General Options",
)
