"""mend show / list / forget -- inspect and manage stored block code."""

from __future__ import annotations

import asyncio

import click
from rich.markup import escape

from mend.cli.formatting import format_block_table, format_code, format_error


@click.command()
@click.argument("block_id")
@click.pass_context
def show(ctx: click.Context, block_id: str) -> None:
    """Show the stored code for BLOCK_ID."""
    from mend.cli import _store_session

    with _store_session(ctx) as (store, console):
        code = asyncio.run(store.fetch(block_id))
        if code is None:
            format_error(f"No stored code for block '{block_id}'.", console)
            raise SystemExit(1)
        format_code(block_id, code, console)


@click.command("list")
@click.pass_context
def list_blocks(ctx: click.Context) -> None:
    """List stored blocks."""
    from mend.cli import _store_session

    with _store_session(ctx) as (store, console):
        format_block_table(asyncio.run(store.list_blocks()), console)


@click.command()
@click.argument("block_id")
@click.pass_context
def forget(ctx: click.Context, block_id: str) -> None:
    """Delete the stored code for BLOCK_ID so its default runs again."""
    from mend.cli import _store_session

    with _store_session(ctx) as (store, console):
        if not asyncio.run(store.delete(block_id)):
            format_error(f"No stored code for block '{block_id}'.", console)
            raise SystemExit(1)
        console.print(f"Forgot stored code for [cyan]{escape(block_id)}[/cyan]")
