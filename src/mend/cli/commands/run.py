"""mend run -- run a block against the stored code and the configured oracle."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from mend.cli.formatting import format_error, format_result, get_console


def _parse_value(raw: str) -> Any:
    """JSON value if it parses, else the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_scope(items: tuple[str, ...]) -> dict[str, Any]:
    scope: dict[str, Any] = {}
    for item in items:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--scope")
        scope[name] = _parse_value(raw)
    return scope


@click.command()
@click.argument("block_id")
@click.option("-d", "--description", required=True, help="What the block should do.")
@click.option("-c", "--code", default=None, help="Default implementation as source text.")
@click.option(
    "-f", "--file", "code_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the default implementation from a file.",
)
@click.option("-a", "--arg", "args", multiple=True, help="Positional argument (JSON, else string).")
@click.option("-s", "--scope", "scope_items", multiple=True, help="Scope binding NAME=VALUE (JSON).")
@click.option("--max-retries", type=click.IntRange(min=1), default=None, help="Correction attempts.")
@click.pass_context
def run(
    ctx: click.Context,
    block_id: str,
    description: str,
    code: str | None,
    code_file: Path | None,
    args: tuple[str, ...],
    scope_items: tuple[str, ...],
    max_retries: int | None,
) -> None:
    """Run BLOCK_ID, repairing it through the oracle if it fails.

    Stored code for BLOCK_ID takes precedence over --code/--file. The oracle
    is configured from MEND_OPENAI_API_KEY (or OPENAI_API_KEY); without it,
    failures are reported unrepaired.
    """
    from mend.cli import _store_session
    from mend.config import MendConfig
    from mend.runtime import Mend

    console = get_console()
    if (code is None) == (code_file is None):
        format_error("Pass exactly one of --code or --file.", console)
        raise SystemExit(1)

    source = code if code is not None else code_file.read_text(encoding="utf-8")
    positional = [_parse_value(a) for a in args]
    scope = _parse_scope(scope_items)
    config = MendConfig() if max_retries is None else MendConfig(max_retries=max_retries)

    async def _run(store) -> Any:
        async with Mend.from_env(store=store, config=config) as mend:
            return await mend.run(block_id, description, source, *positional, scope=scope)

    with _store_session(ctx) as (store, console):
        result = asyncio.run(_run(store))
        format_result(result, console)
