"""Tests for the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from chat_relay.cli import app

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path
    from unittest.mock import MagicMock

runner = CliRunner(env={"NO_COLOR": "1", "TERM": "dumb"})


@pytest.fixture(autouse=True)
def relay_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide the store settings through the environment."""
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-from-env")
    monkeypatch.delenv("SUPABASE_FUNCTIONS_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_MODE", raising=False)
    monkeypatch.delenv("OPENAI_CHAT_MODEL", raising=False)


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[MagicMock]:
    """Keep the CLI from replacing the test run's log handlers."""
    with patch("chat_relay.cli.setup_rich_logging") as mock_setup:
        yield mock_setup


def test_main_no_args() -> None:
    """Test the main function with no arguments."""
    result = runner.invoke(app)
    assert "No command specified" in result.stdout
    assert "Usage" in result.stdout


def test_serve_help() -> None:
    """The serve command documents its options."""
    result = runner.invoke(app, ["serve", "--help"])
    assert result.exit_code == 0
    assert "--supabase-url" in result.stdout
    assert "--history-limit" in result.stdout


@patch("uvicorn.run")
def test_serve_starts_uvicorn(mock_uvicorn_run: MagicMock, no_logging_setup: MagicMock) -> None:
    """Serve builds the app from env and flags and hands it to uvicorn."""
    result = runner.invoke(
        app,
        ["serve", "--port", "61337", "--model", "gpt-4o-mini", "--api-mode", "responses", "--log-level", "DEBUG"],
    )
    assert result.exit_code == 0, result.output
    assert "Starting chat relay on 0.0.0.0:61337" in result.stdout
    mock_uvicorn_run.assert_called_once()
    fastapi_app = mock_uvicorn_run.call_args.args[0]
    assert mock_uvicorn_run.call_args.kwargs == {"host": "0.0.0.0", "port": 61337, "log_config": None}
    config = fastapi_app.state.config
    assert config.openai_chat_model == "gpt-4o-mini"
    assert config.openai_api_mode == "responses"
    assert config.supabase_anon_key == "anon-from-env"
    assert config.functions_base_url == "https://project.supabase.co/functions/v1"
    no_logging_setup.assert_called_once()
    assert no_logging_setup.call_args.args == ("DEBUG",)


@patch("uvicorn.run")
def test_serve_reads_config_file(mock_uvicorn_run: MagicMock, tmp_path: Path) -> None:
    """Values from the config file become option defaults."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[defaults]\nhistory-limit = 8\n\n[serve]\nport = 9999\ntitle-generation = false\nmodel = "from-file"\n',
    )
    result = runner.invoke(app, ["serve", "--config", str(config_path), "--history-limit", "6"])
    assert result.exit_code == 0, result.output
    assert mock_uvicorn_run.call_args.kwargs["port"] == 9999
    config = mock_uvicorn_run.call_args.args[0].state.config
    assert config.openai_chat_model == "from-file"
    assert config.history_limit == 6
    assert config.enable_title_generation is False


@patch("uvicorn.run")
def test_serve_without_store_settings_fails(
    mock_uvicorn_run: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A missing store URL is reported before the server starts."""
    monkeypatch.delenv("SUPABASE_URL")
    with patch("dotenv.load_dotenv"):
        result = runner.invoke(app, ["serve"])
    assert result.exit_code == 1
    assert "Invalid relay configuration" in result.output
    mock_uvicorn_run.assert_not_called()


@patch("uvicorn.run")
def test_print_args_masks_secrets(mock_uvicorn_run: MagicMock) -> None:
    """Credentials are never echoed."""
    result = runner.invoke(app, ["serve", "--print-args", "--openai-api-key", "sk-very-secret"])
    assert result.exit_code == 0, result.output
    assert "sk-very-secret" not in result.stdout
    assert "openai_api_key" in result.stdout
    mock_uvicorn_run.assert_called_once()
