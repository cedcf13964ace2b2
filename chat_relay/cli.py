"""Command-line entry point for the chat relay."""

from __future__ import annotations

import logging

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from chat_relay import opts
from chat_relay.config import RelayConfig
from chat_relay.core.utils import console, print_command_line_args, print_error_message

app = typer.Typer(
    name="chat-relay",
    help="Streaming chat relay between a client, a Supabase store and an OpenAI-compatible provider.",
    add_completion=True,
)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Streaming chat relay."""
    if ctx.invoked_subcommand is None:
        console.print("[bold red]No command specified.[/bold red]")
        console.print("[bold yellow]Running --help for your convenience.[/bold yellow]")
        console.print(ctx.get_help())
        raise typer.Exit
    import dotenv  # noqa: PLC0415

    dotenv.load_dotenv()


def setup_rich_logging(log_level: str = "info", *, console: Console | None = None) -> None:
    """Route the root and uvicorn loggers through one RichHandler."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    handler = RichHandler(
        console=console or Console(),
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for uvicorn_logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(uvicorn_logger_name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = False

    # Suppress noisy logs from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@app.command("serve")
def serve(
    host: str = opts.SERVER_HOST,
    port: int = opts.SERVER_PORT,
    openai_base_url: str | None = opts.OPENAI_BASE_URL,
    openai_api_key: str | None = opts.OPENAI_API_KEY,
    model: str | None = opts.MODEL,
    api_mode: str | None = opts.API_MODE,
    supabase_url: str | None = opts.SUPABASE_URL,
    supabase_anon_key: str | None = opts.SUPABASE_ANON_KEY,
    functions_base_url: str | None = opts.FUNCTIONS_BASE_URL,
    history_limit: int = opts.HISTORY_LIMIT,
    memory_limit: int = opts.MEMORY_LIMIT,
    buffer_partial_lines: bool = opts.BUFFER_PARTIAL_LINES,
    title_generation: bool = opts.TITLE_GENERATION,
    log_level: str = opts.LOG_LEVEL,
    config_file: str | None = opts.CONFIG_FILE,  # noqa: ARG001
    print_args: bool = opts.PRINT_ARGS,
) -> None:
    """Start the chat relay server.

    Each POST to /chat-stream authenticates the caller against the store,
    persists the user message, assembles the prompt from history, summary,
    preferences and memories, and streams the provider's reply back while
    saving it once the stream completes.
    """
    if print_args:
        print_command_line_args(locals())
    setup_rich_logging(log_level, console=console)

    try:
        config = RelayConfig.from_env(
            openai_base_url=openai_base_url,
            openai_api_key=openai_api_key,
            openai_chat_model=model,
            openai_api_mode=api_mode,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            functions_base_url=functions_base_url,
            history_limit=history_limit,
            memory_limit=memory_limit,
            buffer_partial_lines=buffer_partial_lines,
            enable_title_generation=title_generation,
        )
    except ValidationError as exc:
        print_error_message(
            f"Invalid relay configuration: {exc}",
            "Set SUPABASE_URL and SUPABASE_ANON_KEY (or pass --supabase-url/--supabase-anon-key).",
        )
        raise typer.Exit(1) from exc

    import uvicorn  # noqa: PLC0415

    from chat_relay.relay.api import create_app  # noqa: PLC0415

    console.print(f"[bold green]Starting chat relay on {host}:{port}[/bold green]")
    console.print(f"  🤖 Provider: [blue]{config.openai_base_url}[/blue] ({config.openai_api_mode})")
    console.print(f"  🧠 Model: [blue]{config.openai_chat_model}[/blue]")
    console.print(f"  💾 Store: [blue]{config.supabase_url}[/blue]")
    console.print(
        f"  🔍 Context: [blue]{config.history_limit}[/blue] messages, "
        f"[blue]{config.memory_limit}[/blue] memories",
    )

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
