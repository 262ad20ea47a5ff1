"""Interactive chat REPL.

Reads lines from the terminal and submits them to a
StreamingSessionController, rendering each exchange live as fragments
arrive. Lines starting with "/" are commands.
"""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console
from rich.live import Live
from rich.text import Text

from streamchat.controller import StreamingSessionController
from streamchat.display import BRAND, render_transcript
from streamchat.errors import InvalidTargetError
from streamchat.events import SessionEvent

logger = logging.getLogger(__name__)

_EXIT_COMMANDS = {"/exit", "/quit", "exit", "quit"}

_HELP_TEXT = """\
[bold]Commands[/bold]
  /help    Show this help
  /clear   Clear the conversation
  /exit    Leave (also: exit, quit, Ctrl+D)

Anything else is sent to the model."""


class ChatREPL:
    """Terminal front end for a single conversation."""

    def __init__(
        self,
        controller: StreamingSessionController,
        console: Console | None = None,
    ) -> None:
        self.controller = controller
        self.console = console or Console()

    @property
    def display_name(self) -> str:
        return self.controller.provider.display_name

    def run(self) -> None:
        """Main REPL loop."""
        asyncio.run(self.run_async())

    async def run_async(self) -> None:
        self.console.print(
            render_transcript(self.controller.snapshot(), display_name=self.display_name)
        )

        while True:
            try:
                prompt_text = Text()
                prompt_text.append("\nyou", style=BRAND["user"])
                prompt_text.append(" ▸ ", style=BRAND["accent"])

                line = await asyncio.to_thread(self.console.input, prompt_text)
                await self._dispatch(line.strip())

            except (KeyboardInterrupt, EOFError):
                self.console.print(f"\n[{BRAND['dim']}]Goodbye.[/{BRAND['dim']}]")
                break

    async def _dispatch(self, line: str) -> None:
        """Route one input line to a command or to the controller.

        Raises:
            EOFError: On an exit command.
        """
        if not line:
            return

        command = line.lower()
        if command in _EXIT_COMMANDS:
            raise EOFError
        if command == "/help":
            self.console.print(_HELP_TEXT)
            return
        if command == "/clear":
            self._clear()
            return

        await self.send(line)

    def _clear(self) -> None:
        try:
            self.controller.transcript.clear()
        except InvalidTargetError as e:
            self.console.print(f"[{BRAND['amber']}]{e}[/{BRAND['amber']}]")
            return
        self.console.clear()
        self.console.print(
            render_transcript((), display_name=self.display_name)
        )

    async def send(self, text: str) -> None:
        """Submit ``text`` and render the exchange live until it resolves."""
        start = len(self.controller.transcript)

        with Live(
            self._render_exchange(start, busy=True),
            console=self.console,
            refresh_per_second=12,
        ) as live:

            def _refresh(_event: SessionEvent) -> None:
                live.update(self._render_exchange(start))

            self.controller.emitter.add_listener(_refresh)
            try:
                result = await self.controller.submit(text)
            finally:
                self.controller.emitter.remove_listener(_refresh)
            failed = result is not None and not result.ok
            live.update(
                self._render_exchange(start, error=result.error if failed else None)
            )

    def _render_exchange(
        self, start: int, *, busy: bool | None = None, error: str | None = None,
    ):
        entries = self.controller.snapshot()[start:]
        return render_transcript(
            entries,
            busy=self.controller.is_busy if busy is None else busy,
            error=error,
            display_name=self.display_name,
        )
