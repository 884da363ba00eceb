from __future__ import annotations

import sys
import typing as t

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table


class Console:
    """Operator-facing output. Diagnostics go through ``logging`` instead."""

    def __init__(self) -> None:
        self.quiet = False
        self._out = RichConsole(highlight=False)
        self._err = RichConsole(stderr=True, highlight=False)

    def info(self, value: str, style: str | None = None) -> None:
        if not self.quiet:
            self._out.print(escape(value), style=style)

    def always(self, value: str, style: str | None = None) -> None:
        self._out.print(escape(value), style=style)

    def info_stderr(self, value: str) -> None:
        self._err.print(escape(value))

    def warn(self, value: str) -> None:
        self._err.print(f"[yellow]Warning:[/yellow] {escape(value)}")

    def error(self, value: str) -> None:
        self._err.print(f"[bold red]Error:[/bold red] {escape(value)}")

    def banner(self, title: str, subtitle: str) -> None:
        if self.quiet:
            return
        self._out.rule(f"[bold cyan]{escape(title)}[/bold cyan]")
        self._out.print(escape(subtitle), style="dim", justify="center")
        self._out.print()

    def table(self, title: str, rows: t.Iterable[tuple[str, str]]) -> None:
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column(style="bold")
        table.add_column()
        for key, value in rows:
            table.add_row(escape(key), escape(value))
        self._out.print(table)

    def confirm(self, question: str) -> bool:
        return Confirm.ask(escape(question), console=self._out, default=False)

    def raw(self, text: str) -> None:
        """Write generated artifacts untouched."""
        sys.stdout.write(text)
        sys.stdout.flush()
