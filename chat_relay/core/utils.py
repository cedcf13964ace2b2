"""Console helpers shared by the CLI commands."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_SECRET_MARKERS = ("key", "token", "secret")


def print_error_message(message: str, suggestion: str | None = None) -> None:
    """Print an error message in a red panel."""
    body = f"[bold red]{message}[/bold red]"
    if suggestion:
        body += f"\n\n[yellow]{suggestion}[/yellow]"
    err_console.print(Panel(body, title="Error", border_style="red"))


def print_command_line_args(args: dict[str, Any]) -> None:
    """Print the command line arguments, masking credentials."""
    table = Table(title="Command Line Arguments", show_header=True)
    table.add_column("Argument", style="cyan")
    table.add_column("Value", style="magenta")
    for name, value in sorted(args.items()):
        shown = value
        if value and any(marker in name for marker in _SECRET_MARKERS):
            shown = "***"
        table.add_row(name, str(shown))
    console.print(table)
