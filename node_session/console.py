"""Colorized status output and the waiting spinner."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.markup import escape


class Reporter:
    """Tagged status lines in the ``[INFO] ...`` style, rendered with rich.

    Regular output goes to stdout, warnings and failures to stderr.
    """

    def __init__(self, out: Optional[Console] = None, err: Optional[Console] = None):
        self.out = out or Console(highlight=False)
        self.err = err or Console(stderr=True, highlight=False)

    def info(self, message: str):
        self.out.print(f"[cyan][INFO][/cyan] {escape(message)}")

    def command(self, argv: str):
        self.out.print(f"[dim][CMD] {escape(argv)}[/dim]")

    def notice(self, message: str):
        """Highlighted message the user should not miss."""
        self.out.print(f"[bold yellow][NOTE][/bold yellow] {escape(message)}")

    def success(self, message: str):
        self.out.print(f"[green][OK][/green] {escape(message)}")

    def warn(self, message: str):
        self.err.print(f"[yellow][WARN][/yellow] {escape(message)}")

    def fail(self, category: str, message: str, hint: Optional[str] = None):
        """Report a failure under its category, with an optional hint line."""
        self.err.print(f"[bold red][ERROR][/bold red] [red]{escape(category)}:[/red] {escape(message)}")
        if hint:
            self.err.print(f"        {escape(hint)}")

    def usage(self, text: str):
        self.err.print(text, markup=False, highlight=False, soft_wrap=True)

    @contextmanager
    def progress(self, text: str) -> Iterator[Callable[[str], None]]:
        """Spinner shown while waiting; yields a function to update its text.

        On a non-terminal output there is nothing to animate, so updates are
        dropped.
        """
        if not self.out.is_terminal:
            yield lambda _text: None
            return

        with self.out.status(escape(text), spinner="dots") as status:
            yield lambda new_text: status.update(escape(new_text))


reporter = Reporter()
