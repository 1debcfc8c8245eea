from __future__ import annotations

from typing import Callable, Sequence

from rich.console import Console
from rich.markup import escape

ACK_PROMPT = "Press Enter to continue..."
# No menu has anywhere near this many entries.
MAX_SELECTION_DIGITS = 6


def default_console() -> Console:
    return Console(highlight=False)


class OperatorConsole:
    """Line-based operator I/O.

    Output goes through a rich ``Console``; input is one line per read from
    *reader* (``input`` by default). An exhausted reader raises ``EOFError``,
    which callers treat as the operator leaving.
    """

    def __init__(
        self,
        console: Console | None = None,
        reader: Callable[[], str] | None = None,
    ):
        self.console = console or default_console()
        self._reader = reader or input

    def screen(self, device_path: str, title: str) -> None:
        self.console.clear()
        self.say(f"Device: {device_path}")
        self.heading(title)

    def heading(self, text: str) -> None:
        self.console.print(f"[bold]{escape(text)}[/bold]")

    def say(self, text: str = "") -> None:
        self.console.print(text, markup=False)

    def block(self, text: str) -> None:
        self.console.print(text, markup=False, soft_wrap=True)

    def options(self, choices: Sequence[tuple[int, str]], back_label: str) -> None:
        self.say()
        self.say("Choose what to do:")
        for number, label in choices:
            self.say(f"{number}.- {label}")
        self.say(f"0.- {back_label}")

    def ask(self, prompt: str) -> str:
        self.console.print(prompt, end="", markup=False)
        return self._reader()

    def choose(self) -> int | None:
        """Read a menu selection; ``None`` when the line is not a usable number."""
        raw = self.ask("Choose: ").strip()
        if not raw.isascii() or not raw.isdigit():
            self.reject("Not a number.")
            return None
        digits = raw.lstrip("0") or "0"
        if len(digits) > MAX_SELECTION_DIGITS:
            self.reject("Incorrect option.")
            return None
        return int(digits)

    def acknowledge(self) -> None:
        self.ask(ACK_PROMPT)

    def reject(self, message: str) -> None:
        self.say(f"{message} {ACK_PROMPT}")
        self._reader()
