"""Mend CLI -- terminal interface for running and inspecting stored blocks.

This module is NEVER imported from mend/__init__.py.
It is only loaded via the ``mend`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

try:
    import click
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install mend[cli]"
    ) from None

from mend.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from mend.store import SqlBlockStore


@click.group()
@click.option(
    "--db",
    default=".mend.db",
    envvar="MEND_DB",
    help="Path to the block database.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show runtime logs.")
@click.pass_context
def cli(ctx: click.Context, db: str, verbose: bool) -> None:
    """Mend: run named code blocks and repair them when they fail."""
    from dotenv import load_dotenv

    load_dotenv()
    if verbose:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db


@contextmanager
def _store_session(ctx: click.Context) -> Iterator[tuple[SqlBlockStore, Console]]:
    """Context manager that opens the block store, yields (store, console), and handles cleanup.

    Ensures the store is closed on exit and formats exceptions as CLI errors.
    """
    from mend.store import SqlBlockStore

    console = get_console()
    try:
        store = SqlBlockStore.open(ctx.obj["db_path"])
        try:
            yield store, console
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from mend.cli.commands.blocks import forget, list_blocks, show  # noqa: E402
from mend.cli.commands.run import run  # noqa: E402

cli.add_command(run)
cli.add_command(show)
cli.add_command(list_blocks)
cli.add_command(forget)
