"""Rich formatting helpers for the Mend CLI.

Provides functions that format SDK data structures for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.pretty import Pretty
from rich.syntax import Syntax
from rich.table import Table

if TYPE_CHECKING:
    from mend.storage.schema import BlockRow


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_result(value: Any, console: Console) -> None:
    """Display a block's return value."""
    console.print(Pretty(value))


def format_code(block_id: str, code: str, console: Console) -> None:
    """Display stored code for a block with syntax highlighting."""
    console.print(f"[bold]Block:[/bold] {escape(block_id)}", highlight=False)
    console.print(Syntax(code, "python", line_numbers=True))


def format_block_table(rows: list[BlockRow], console: Console) -> None:
    """Display stored blocks as a table."""
    if not rows:
        console.print("[dim]No stored blocks.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Block", style="cyan")
    table.add_column("Updated", style="dim")
    table.add_column("Lines", justify="right", style="green")

    for row in rows:
        table.add_row(
            escape(row.block_id),
            row.updated_at.strftime("%Y-%m-%d %H:%M"),
            str(len(row.code.splitlines())),
        )

    console.print(table)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
