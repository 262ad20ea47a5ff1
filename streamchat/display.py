"""Rich rendering for transcripts.

Turns transcript snapshots into Rich renderables: user turns aligned right,
assistant turns left, a "Typing..." indicator while a request is
outstanding, and an inline error banner after a failed exchange.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from streamchat import __version__
from streamchat.schemas.config import ChatConfig
from streamchat.schemas.transcript import Author, Entry

# ── Brand Colors ──────────────────────────────────────────────────

BRAND = {
    "user": "#9b5de5",
    "assistant": "#2b2d42",
    "accent": "#c77dff",
    "dim": "#8d99ae",
    "red": "#ff4444",
    "amber": "#ffaa00",
}

TYPING_TEXT = "Typing..."


def empty_state_text(display_name: str) -> str:
    return f"Start a conversation with {display_name}!"


def render_entry(entry: Entry) -> RenderableType:
    """Render one transcript entry as a chat bubble."""
    if entry.author == Author.USER:
        bubble = Panel(
            Text(entry.text),
            title="You",
            title_align="right",
            border_style=BRAND["user"],
            expand=False,
        )
        return Align.right(bubble)

    bubble = Panel(
        Text(entry.text),
        title="Assistant",
        title_align="left",
        border_style=BRAND["dim"] if entry.pending else BRAND["accent"],
        expand=False,
    )
    return Align.left(bubble)


def render_typing() -> RenderableType:
    return Align.left(Text(TYPING_TEXT, style=f"italic {BRAND['dim']}"))


def render_error(message: str) -> RenderableType:
    """Inline diagnostic shown after a failed exchange."""
    return Panel(
        Text(message, justify="center"),
        border_style=BRAND["red"],
        style=BRAND["red"],
    )


def render_transcript(
    entries: Sequence[Entry],
    *,
    busy: bool = False,
    error: str | None = None,
    display_name: str = "Gemini",
) -> RenderableType:
    """Render a transcript snapshot with loading and error state.

    Args:
        entries: Entries to show, oldest first.
        busy: Whether a request is outstanding (shows the typing indicator).
        error: Diagnostic from the last failed exchange, if any.
        display_name: Model name used in the empty-state hint.
    """
    parts: list[RenderableType] = []

    if not entries and not busy:
        parts.append(
            Align.center(Text(empty_state_text(display_name), style=BRAND["dim"]))
        )

    parts.extend(render_entry(entry) for entry in entries)

    if busy:
        parts.append(render_typing())
    if error:
        parts.append(render_error(error))

    return Group(*parts)


def render_config(console: Console, config: ChatConfig, *, key_present: bool) -> None:
    """Print the effective configuration as a table."""
    table = Table(title=f"streamchat {__version__}", show_header=True, header_style="bold")
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Model", config.model)
    table.add_row("Display name", config.display_name)
    table.add_row(
        "API key",
        f"{config.api_key_env} "
        + ("[green](set)[/green]" if key_present else "[yellow](missing)[/yellow]"),
    )
    table.add_row("API base", config.api_base or "[dim](provider default)[/dim]")
    table.add_row("Timeout", f"{config.timeout:g}s")
    table.add_row("System prompt", config.system_prompt or "[dim](none)[/dim]")

    console.print(table)
