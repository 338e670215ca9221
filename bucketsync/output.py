"""Console output helpers for the bucketsync CLI."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats CLI output as rich text or JSON.

    In JSON mode, informational messages are suppressed and only data written
    with :meth:`output_json` reaches stdout. Errors always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def info(self, message: str) -> None:
        """Print an informational message."""
        if self.quiet or self.json_output:
            return
        self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        """Print a success message."""
        if self.quiet or self.json_output:
            return
        self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        """Print a warning message to stderr."""
        if self.quiet:
            return
        self.err_console.print(
            f"[yellow]Warning:[/yellow] {message}", highlight=False, soft_wrap=True
        )

    def error(self, message: str) -> None:
        """Print an error message to stderr (never suppressed)."""
        self.err_console.print(
            f"[red]Error:[/red] {message}", highlight=False, soft_wrap=True
        )

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        sys.stdout.write(json.dumps(data, indent=2, default=str))
        sys.stdout.write("\n")

    def output_table(
        self,
        columns: list[str],
        rows: list[list[Any]],
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a rich table."""
        if self.json_output:
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[str(value) for value in row])
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of key/value pairs."""
        if self.quiet or self.json_output:
            return
        self.console.print(f"\n[bold]{title}[/bold]")
        width = max((len(key) for key, _ in items), default=0)
        for key, value in items:
            self.console.print(f"  {key.ljust(width)}  {value}", highlight=False)
