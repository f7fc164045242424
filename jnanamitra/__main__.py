"""CLI entrypoint for jnanamitra: a plain console front-end for the chat core."""

from __future__ import annotations

import argparse
import asyncio
from importlib import metadata
from pathlib import Path
import sys
from typing import Sequence, TextIO

from .app import WidgetSession, create_widget_session
from .config import ensure_config_dir, load_config
from .events import SESSION_CHANGED, Event
from .logging_utils import configure_logging
from .models import Message

PROMPT = "> "
DEFAULT_TITLE = "VIGNAN JnanaMitra"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jnanamitra", description="JnanaMitra console chat"
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a config.toml (defaults to ~/.config/jnanamitra/config.toml)",
    )
    return parser


def format_message(message: Message) -> str:
    """Render one message as a single console line."""
    speaker = "You" if message.role.value == "user" else "JnanaMitra"
    line = f"[{message.timestamp}] {speaker}: {message.content}"
    if message.media:
        line += f"\n    (image: {message.media})"
    return line


class ConsoleFrontend:
    """Print session changes and forward typed lines to the widget session."""

    def __init__(
        self,
        session: WidgetSession,
        output: TextIO = sys.stdout,
        title: str = DEFAULT_TITLE,
    ) -> None:
        self.session = session
        self.output = output
        self.title = title
        self._printed = 0
        session.controller.bus.subscribe(SESSION_CHANGED, self._on_session_changed)

    def _on_session_changed(self, event: Event) -> None:
        messages: tuple[Message, ...] = event.data["messages"]
        if event.data.get("reason") == "cleared":
            self._printed = 0
        for message in messages[self._printed :]:
            print(format_message(message), file=self.output)
        self._printed = len(messages)
        self.output.flush()

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the user asked to quit."""
        command = line.strip()
        if command == "/quit":
            return False
        if command == "/clear":
            await self.session.controller.clear()
            return True
        if command == "/status":
            status = self.session.controller.describe()
            print(
                f"state={status['state']} messages={status['messages']}",
                file=self.output,
            )
            return True
        if command == "/suggestions":
            for suggestion in self.session.draft.suggestions:
                print(f"  - {suggestion}", file=self.output)
            return True
        self.session.draft.set(line)
        await self.session.send_draft()
        return True

    async def run(self) -> None:
        print(f"=== {self.title} ===", file=self.output)
        for message in self.session.messages:
            print(format_message(message), file=self.output)
        self._printed = len(self.session.messages)
        try:
            while True:
                try:
                    line = await asyncio.to_thread(input, PROMPT)
                except EOFError:
                    break
                if not await self.handle_line(line):
                    break
        finally:
            await self.session.aclose()


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the console loop."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("jnanamitra")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"jnanamitra {version}")
        return

    ensure_config_dir()
    config = load_config(config_path=args.config)
    configure_logging(config["logging"])
    session = create_widget_session(config)
    try:
        asyncio.run(ConsoleFrontend(session, title=config["app"]["title"]).run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
