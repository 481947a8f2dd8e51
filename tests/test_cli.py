"""CLI tests for Mend -- tests all 4 commands via Click's CliRunner.

Each test uses runner.isolated_filesystem() with file-backed databases
since the CLI opens its own store (separate from SDK setup).
"""

from __future__ import annotations

import asyncio

import pytest
from click.testing import CliRunner

from mend.cli import cli
from mend.store import SqlBlockStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner(monkeypatch):
    """Click test runner with no oracle credentials and no .env loading."""
    monkeypatch.delenv("MEND_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("MEND_DB", raising=False)
    monkeypatch.setattr("dotenv.load_dotenv", lambda *args, **kwargs: False)
    return CliRunner()


def _store_blocks(db_path: str, blocks: dict[str, str]) -> None:
    """Save blocks through the SDK, then close the store."""
    store = SqlBlockStore.open(db_path)

    async def _save() -> None:
        for block_id, code in blocks.items():
            await store.save(block_id, code)

    try:
        asyncio.run(_save())
    finally:
        store.close()


def _fetch(db_path: str, block_id: str) -> str | None:
    store = SqlBlockStore.open(db_path)
    try:
        return asyncio.run(store.fetch(block_id))
    finally:
        store.close()


# ---------------------------------------------------------------------------
# Run command tests
# ---------------------------------------------------------------------------

class TestRunCommand:
    """Tests for mend run."""

    def test_run_code_with_args(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "sum",
                "-d", "Add two numbers", "-c", "lambda p, q: p + q",
                "-a", "5", "-a", "10",
            ])
            assert result.exit_code == 0, result.output
            assert "15" in result.output

    def test_run_with_scope(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "greet",
                "-d", "Greet someone", "-c", "return greeting + ', ' + name",
                "-s", 'greeting="Hello"', "-s", "name=Ada",
            ])
            assert result.exit_code == 0, result.output
            assert "Hello, Ada" in result.output

    def test_run_from_file(self, runner: CliRunner):
        with runner.isolated_filesystem():
            with open("block.py", "w", encoding="utf-8") as fh:
                fh.write("def double(x):\n    return x * 2\n")
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "double", "-d", "Double", "-f", "block.py", "-a", "21",
            ])
            assert result.exit_code == 0, result.output
            assert "42" in result.output

    def test_run_prefers_stored_code(self, runner: CliRunner):
        with runner.isolated_filesystem():
            _store_blocks("test.db", {"sq": "lambda x: x * x"})
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "sq", "-d", "Square", "-c", "lambda x: -1", "-a", "7",
            ])
            assert result.exit_code == 0, result.output
            assert "49" in result.output

    def test_run_failure_without_oracle(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "sq", "-d", "Square", "-c", "lambda x: x * y", "-a", "3",
            ])
            assert result.exit_code == 1
            assert "Error" in result.output
            assert "NameError" in result.output
            assert _fetch("test.db", "sq") is None

    def test_run_needs_exactly_one_source(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "run", "sq", "-d", "Square"])
            assert result.exit_code == 1
            assert "exactly one of --code or --file" in result.output

    def test_run_bad_scope(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "b", "-d", "x", "-c", "return 1", "-s", "novalue",
            ])
            assert result.exit_code != 0
            assert "NAME=VALUE" in result.output

    def test_run_max_retries_validated(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, [
                "--db", "test.db", "run", "b", "-d", "x", "-c", "return 1", "--max-retries", "0",
            ])
            assert result.exit_code == 2


# ---------------------------------------------------------------------------
# Show / list / forget command tests
# ---------------------------------------------------------------------------

class TestShowCommand:
    """Tests for mend show."""

    def test_show_stored_code(self, runner: CliRunner):
        with runner.isolated_filesystem():
            _store_blocks("test.db", {"sq": "lambda x: x * x"})
            result = runner.invoke(cli, ["--db", "test.db", "show", "sq"])
            assert result.exit_code == 0, result.output
            assert "sq" in result.output
            assert "lambda x: x * x" in result.output

    def test_show_missing(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "show", "nope"])
            assert result.exit_code == 1
            assert "No stored code" in result.output


class TestListCommand:
    """Tests for mend list."""

    def test_list_blocks(self, runner: CliRunner):
        with runner.isolated_filesystem():
            _store_blocks("test.db", {"sq": "lambda x: x * x", "add": "lambda a, b: a + b"})
            result = runner.invoke(cli, ["--db", "test.db", "list"])
            assert result.exit_code == 0, result.output
            assert "add" in result.output
            assert "sq" in result.output
            assert result.output.index("add") < result.output.index("sq")

    def test_list_empty(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "list"])
            assert result.exit_code == 0
            assert "No stored blocks" in result.output

    def test_db_from_env(self, runner: CliRunner, monkeypatch):
        with runner.isolated_filesystem():
            _store_blocks("env.db", {"from-env": "lambda: 1"})
            monkeypatch.setenv("MEND_DB", "env.db")
            result = runner.invoke(cli, ["list"])
            assert result.exit_code == 0
            assert "from-env" in result.output


class TestForgetCommand:
    """Tests for mend forget."""

    def test_forget(self, runner: CliRunner):
        with runner.isolated_filesystem():
            _store_blocks("test.db", {"sq": "lambda x: x * x"})
            result = runner.invoke(cli, ["--db", "test.db", "forget", "sq"])
            assert result.exit_code == 0, result.output
            assert "Forgot" in result.output
            assert _fetch("test.db", "sq") is None

    def test_forget_prints_markup_literally(self, runner: CliRunner):
        with runner.isolated_filesystem():
            _store_blocks("test.db", {"[bold]x": "lambda: 1"})
            result = runner.invoke(cli, ["--db", "test.db", "forget", "[bold]x"])
            assert result.exit_code == 0, result.output
            assert "[bold]x" in result.output
            assert _fetch("test.db", "[bold]x") is None

    def test_forget_missing(self, runner: CliRunner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--db", "test.db", "forget", "nope"])
            assert result.exit_code == 1
            assert "No stored code" in result.output


class TestHelp:

    def test_help_lists_commands(self, runner: CliRunner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("run", "show", "list", "forget"):
            assert name in result.output
