"""streamchat CLI: Typer + Rich terminal interface.

Commands: (none) starts the interactive REPL, ask, config.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from streamchat import __version__
from streamchat.controller import StreamingSessionController
from streamchat.display import BRAND, render_config, render_error
from streamchat.events import EventType, SessionEvent
from streamchat.keys import KEY_SIGNUP_URL, has_key, load_keys_env
from streamchat.providers.litellm_provider import LiteLLMStreamProvider
from streamchat.providers.registry import load_chat_config
from streamchat.schemas.config import ChatConfig

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="streamchat",
    help="Chat with a streaming LLM in your terminal.",
    no_args_is_help=False,
    rich_markup_mode="rich",
)


# ── Callbacks ───────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"streamchat {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # LiteLLM is chatty at DEBUG; keep it to warnings unless asked
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log debug output to stderr.",
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help="LiteLLM model identifier (overrides the config file).",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c",
        help="Path to a TOML config file with a [chat] table.",
    ),
) -> None:
    """Chat with a streaming LLM in your terminal."""
    _configure_logging(verbose)
    load_keys_env()

    config = _load_config(config_path, model)
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        from streamchat.repl import ChatREPL

        _warn_missing_key(config)
        ChatREPL(_build_controller(config), console=console).run()


# ── Helpers ──────────────────────────────────────────────────────


def _load_config(config_path: Path | None, model: str | None) -> ChatConfig:
    """Load the chat config, exit on error."""
    try:
        return load_chat_config(config_path, model=model)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        err_console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _build_controller(config: ChatConfig) -> StreamingSessionController:
    return StreamingSessionController(LiteLLMStreamProvider(config))


def _warn_missing_key(config: ChatConfig) -> None:
    if not has_key(config):
        err_console.print(
            f"[{BRAND['amber']}]{config.api_key_env} is not set.[/{BRAND['amber']}] "
            f"Get a key at {KEY_SIGNUP_URL} and export it or add it to "
            f"~/.streamchat/keys.env."
        )


# ── Commands ─────────────────────────────────────────────────────


@app.command()
def ask(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="What to ask the model."),
) -> None:
    """Send a single prompt and stream the reply to stdout."""
    config: ChatConfig = ctx.obj
    _warn_missing_key(config)
    controller = _build_controller(config)

    def _print_fragment(event: SessionEvent) -> None:
        if event.type == EventType.FRAGMENT_MERGED:
            console.print(event.data["fragment"], end="", markup=False, highlight=False)

    controller.emitter.add_listener(_print_fragment)
    result = asyncio.run(controller.submit(prompt))

    if result is None:
        err_console.print("[red]Nothing to send:[/red] the prompt is empty.")
        raise typer.Exit(1)

    console.print()
    if not result.ok:
        err_console.print(render_error(result.error or ""))
        raise typer.Exit(1)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the effective chat configuration."""
    config: ChatConfig = ctx.obj
    render_config(console, config, key_present=has_key(config))
