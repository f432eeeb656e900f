"""
Console output for the h3stack CLI.

Thin wrapper over ``rich.console.Console`` so services print through one
object that tests can replace with a recording instance. Messages accept
rich markup (``[green]OK[/green]``).
"""

from typing import Any, List, Optional, Sequence

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table


class Console:
    """User-facing output with consistent status prefixes."""

    INDENT = "  "

    def __init__(self, rich_console: Optional[RichConsole] = None, debug: bool = False):
        self._rich = rich_console or RichConsole(highlight=False)
        self.debug_enabled = debug

    @property
    def rich(self) -> RichConsole:
        return self._rich

    def info(self, message: str) -> None:
        self._rich.print(f"[yellow]ℹ[/yellow] {message}")

    def success(self, message: str) -> None:
        self._rich.print(f"[green]✓ {message}[/green]")

    def warning(self, message: str) -> None:
        self._rich.print(f"[yellow]⚠ {message}[/yellow]")

    def error(self, message: str) -> None:
        self._rich.print(f"[red]✗ {message}[/red]")

    def debug(self, message: str) -> None:
        if self.debug_enabled:
            self._rich.print(f"[dim]{message}[/dim]")

    def indent(self, message: str, level: int = 1) -> None:
        self._rich.print(f"{self.INDENT * level}{message}")

    def plain(self, message: str) -> None:
        """Print without markup processing (tool output may contain brackets)."""
        self._rich.print(message, markup=False)

    def newline(self) -> None:
        self._rich.print()

    def rule(self, title: str = "") -> None:
        self._rich.rule(title)

    def panel(self, message: str, style: str = "blue") -> None:
        self._rich.print(Panel(message, style=style, expand=False))

    def table(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        title: Optional[str] = None,
    ) -> None:
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        self._rich.print(table)

    def tail(self, lines: List[str], limit: int = 20, level: int = 2) -> None:
        """Print the last ``limit`` lines of captured tool output."""
        for line in lines[-limit:]:
            self._rich.print(f"{self.INDENT * level}{line}", markup=False)


console = Console()
