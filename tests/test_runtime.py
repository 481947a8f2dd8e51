"""End-to-end tests for the Mend runtime.

Tests cover:
- Stored code overriding the caller's default
- Passthrough of faults when no oracle is configured
- The bounded repair loop, driven through the real OracleClient
- Round trip: repair, persist, reuse without the oracle
- Scope binding for textual defaults
- Nested blocks staying independent
- Construction from the environment and the blocking wrapper
"""

from __future__ import annotations

import logging

import pytest

from mend import Mend, MemoryStore, MendConfig
from mend.exceptions import (
    ExecutionFailure,
    InvalidInputError,
    OracleError,
    OracleProtocolError,
    PersistenceError,
    RetryExhaustedError,
)
from mend.llm.client import AsyncOpenAIClient
from mend.models import CodeOrigin
from mend.oracle import OracleClient

from fakes import FailingStore, ScriptedLLM, ScriptedOracle, text_response, tool_response


def failing_square(x):
    return x * x * undefined_factor  # noqa: F821


class CallCounter:
    """Callable default that records how often it ran."""

    def __init__(self, result=None):
        self.result = result
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        return self.result


# ===========================================================================
# Resolution
# ===========================================================================


class TestOverride:

    @pytest.mark.asyncio
    async def test_persisted_code_wins_over_working_default(self):
        store = MemoryStore({"sq": "lambda x: x * x"})
        default = CallCounter(result="from default")
        mend = Mend(store=store)

        assert await mend.run("sq", "Square a number", default, 5) == 25
        assert default.calls == 0

    @pytest.mark.asyncio
    async def test_persisted_code_wins_over_text_default(self):
        mend = Mend(store=MemoryStore({"sq": "lambda x: x * x"}))
        assert await mend.run("sq", "Square", "lambda x: -1", 3) == 9

    @pytest.mark.asyncio
    async def test_default_used_when_nothing_stored(self, mend_no_oracle):
        assert await mend_no_oracle.run("add", "Add", lambda a, b: a + b, 2, 3) == 5

    @pytest.mark.asyncio
    async def test_logs_which_version_ran(self, caplog):
        mend = Mend(store=MemoryStore({"sq": "lambda x: x * x"}))
        with caplog.at_level(logging.INFO, logger="mend"):
            await mend.run("sq", "Square", lambda x: x, 2)
            await mend.run("other", "Identity", lambda x: x, 2)
        assert "Using stored version for block sq" in caplog.text
        assert "Using local version for block other" in caplog.text


# ===========================================================================
# No oracle
# ===========================================================================


class TestNoOracle:

    @pytest.mark.asyncio
    async def test_failure_raised_unchanged(self, mend_no_oracle, store):
        with pytest.raises(ExecutionFailure) as first:
            await mend_no_oracle.run("sq", "Square", failing_square, 3)
        failure = first.value
        assert failure.block_id == "sq"
        assert failure.origin is CodeOrigin.DEFAULT
        assert isinstance(failure.error, NameError)
        assert store.blocks == {}

    @pytest.mark.asyncio
    async def test_same_error_identity(self, mend_no_oracle):
        boom = RuntimeError("boom")

        def fail():
            raise boom

        with pytest.raises(ExecutionFailure) as exc_info:
            await mend_no_oracle.run("b1", "Fails", fail)
        assert exc_info.value.error is boom

    @pytest.mark.asyncio
    async def test_invalid_impl(self, mend_no_oracle):
        with pytest.raises(InvalidInputError):
            await mend_no_oracle.run("b1", "Bad", 42)


# ===========================================================================
# Repair loop
# ===========================================================================


class TestRepair:

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        oracle = ScriptedOracle("lambda x: x * x")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("sq", "Square a number", failing_square, 4) == 16
        assert store.blocks["sq"] == "lambda x: x * x"
        assert len(oracle.calls) == 1

        request, attempt = oracle.calls[0]
        assert attempt == 1
        assert request.block_id == "sq"
        assert request.description == "Square a number"
        assert "def failing_square(x):" in request.original_code
        assert request.error.startswith("NameError:")
        assert request.arguments == "[4]"

        other_default = CallCounter(result=-1)
        assert await mend.run("sq", "Square a number", other_default, 7) == 49
        assert other_default.calls == 0
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_text_default_repaired(self, store):
        oracle = ScriptedOracle("async def add(a, b):\n    return a + b")
        mend = Mend(store=store, oracle=oracle)

        # the correction receives the positional args, not the scope
        assert await mend.run("add", "Add", "return a + c", 2, 3, scope={"a": 1}) == 5
        request, _ = oracle.calls[0]
        assert request.original_code == "return a + c"
        assert request.error == "NameError: name 'c' is not defined"

    @pytest.mark.asyncio
    async def test_failing_persisted_code_is_repaired(self):
        store = MemoryStore({"div": "lambda a, b: a / 0"})
        oracle = ScriptedOracle("lambda a, b: a / b")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("div", "Divide a by b", lambda a, b: 0, 8, 2) == 4
        request, _ = oracle.calls[0]
        assert request.original_code == "lambda a, b: a / 0"
        assert store.blocks["div"] == "lambda a, b: a / b"

    @pytest.mark.asyncio
    async def test_bounded_attempts_with_invalid_responses(self, store):
        llm = ScriptedLLM(tool_response("sq", "lambda x: x *"))
        mend = Mend(store=store, oracle=OracleClient(llm), config=MendConfig(max_retries=4))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await mend.run("sq", "Square", failing_square, 2)

        assert len(llm.calls) == 4
        err = exc_info.value
        assert err.attempts == 4
        assert isinstance(err.last_error, OracleProtocolError)
        assert isinstance(err.original, ExecutionFailure)
        assert isinstance(err.original.error, NameError)
        assert store.blocks == {}

    @pytest.mark.asyncio
    async def test_attempt_numbers_passed_to_oracle(self, store):
        oracle = ScriptedOracle(OracleProtocolError("sq", "no tool call"))
        mend = Mend(store=store, oracle=oracle, config=MendConfig(max_retries=3))
        with pytest.raises(RetryExhaustedError):
            await mend.run("sq", "Square", failing_square, 2)
        assert [attempt for _, attempt in oracle.calls] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_mismatched_identifier_consumes_an_attempt(self, store):
        llm = ScriptedLLM(
            tool_response("someone-else", "lambda x: x * x"),
            tool_response("sq", "lambda x: x * x"),
        )
        mend = Mend(store=store, oracle=OracleClient(llm))

        assert await mend.run("sq", "Square", failing_square, 3) == 9
        assert len(llm.calls) == 2
        assert store.blocks["sq"] == "lambda x: x * x"

    @pytest.mark.asyncio
    async def test_text_reply_consumes_an_attempt(self, store):
        llm = ScriptedLLM(text_response(), tool_response("sq", "lambda x: x * x"))
        mend = Mend(store=store, oracle=OracleClient(llm))
        assert await mend.run("sq", "Square", failing_square, 3) == 9
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_failing_correction_consumes_an_attempt(self, store):
        oracle = ScriptedOracle("lambda x: x / 0", "lambda x: x * x")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("sq", "Square", failing_square, 3) == 9
        assert len(oracle.calls) == 2
        assert store.blocks["sq"] == "lambda x: x * x"

    @pytest.mark.asyncio
    async def test_persistence_failure_not_retried(self):
        oracle = ScriptedOracle("lambda x: x * x")
        store = FailingStore(save_error=OSError("disk full"))
        mend = Mend(store=store, oracle=oracle)

        with pytest.raises(PersistenceError, match="disk full"):
            await mend.run("sq", "Square", failing_square, 3)
        assert len(oracle.calls) == 1

    @pytest.mark.asyncio
    async def test_custom_oracle_invalid_code_never_saved(self, store):
        oracle = ScriptedOracle("def broken(:")
        mend = Mend(store=store, oracle=oracle, config=MendConfig(max_retries=3))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await mend.run("sq", "Square", failing_square, 2)

        assert len(oracle.calls) == 3
        assert isinstance(exc_info.value.last_error, OracleProtocolError)
        assert store.blocks == {}
        # the working default still runs afterwards
        assert await mend.run("sq", "Square", lambda x: x * x, 3) == 9

    @pytest.mark.asyncio
    @pytest.mark.parametrize("proposal", [None, "", "   ", "x = 1", 42])
    async def test_custom_oracle_non_function_rejected(self, store, proposal):
        oracle = ScriptedOracle(proposal, "lambda x: x * x")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("sq", "Square", failing_square, 4) == 16
        assert len(oracle.calls) == 2
        assert store.blocks == {"sq": "lambda x: x * x"}

    @pytest.mark.asyncio
    async def test_custom_oracle_exception_consumes_an_attempt(self, store):
        oracle = ScriptedOracle(ConnectionError("upstream down"), "lambda x: x * 2")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("dbl", "Double", failing_square, 3) == 6
        assert [attempt for _, attempt in oracle.calls] == [1, 2]

    @pytest.mark.asyncio
    async def test_custom_oracle_exceptions_exhaust_with_block_id(self, store):
        oracle = ScriptedOracle(ConnectionError("upstream down"))
        mend = Mend(store=store, oracle=oracle, config=MendConfig(max_retries=2))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await mend.run("sq", "Square", failing_square, 3)

        last = exc_info.value.last_error
        assert isinstance(last, OracleError)
        assert isinstance(last.__cause__, ConnectionError)
        assert "'sq'" in str(last)
        assert "ConnectionError: upstream down" in str(last)
        assert len(oracle.calls) == 2

    @pytest.mark.asyncio
    async def test_broken_exception_str_still_repaired(self, store):
        class Opaque(Exception):
            def __str__(self):
                raise RuntimeError("no str")

        def fail(x):
            raise Opaque()

        oracle = ScriptedOracle("lambda x: x + 1")
        mend = Mend(store=store, oracle=oracle)

        assert await mend.run("inc", "Increment", fail, 1) == 2
        request, _ = oracle.calls[0]
        assert request.error == "Opaque: <exception str() failed>"

    @pytest.mark.asyncio
    async def test_invalid_impl_never_reaches_oracle(self, store):
        oracle = ScriptedOracle("lambda: 1")
        mend = Mend(store=store, oracle=oracle)
        with pytest.raises(InvalidInputError):
            await mend.run("b1", "Bad", None)
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_callback_store(self):
        saved: dict[str, str] = {}

        async def save(block_id, code):
            saved[block_id] = code

        mend = Mend(fetch=saved.get, save=save, oracle=ScriptedOracle("lambda x: x * x"))
        assert await mend.run("sq", "Square", failing_square, 5) == 25
        assert saved == {"sq": "lambda x: x * x"}
        assert await mend.run("sq", "Square", failing_square, 6) == 36

    @pytest.mark.asyncio
    async def test_sql_store(self, sql_store):
        mend = Mend(store=sql_store, oracle=ScriptedOracle("lambda x: x * x"))
        assert await mend.run("sq", "Square", failing_square, 5) == 25
        assert await sql_store.fetch("sq") == "lambda x: x * x"


# ===========================================================================
# Scope binding
# ===========================================================================


class TestScope:

    @pytest.mark.asyncio
    async def test_inferred_parameters_bind_positional_args(self, mend_no_oracle):
        assert await mend_no_oracle.run("sum", "Sum", "lambda p, q: p + q", 5, 10, scope={}) == 15

    @pytest.mark.asyncio
    async def test_bare_block_reads_scope(self, mend_no_oracle):
        result = await mend_no_oracle.run(
            "greet", "Greet", "return f'{greeting}, {name}!'",
            scope={"greeting": "Hello", "name": "Ada"},
        )
        assert result == "Hello, Ada!"

    @pytest.mark.asyncio
    async def test_invalid_scope_name(self, mend_no_oracle):
        with pytest.raises(InvalidInputError):
            await mend_no_oracle.run("b1", "Bad scope", "return 1", scope={"not valid": 1})

    @pytest.mark.asyncio
    async def test_async_callable_awaited(self, mend_no_oracle):
        async def fetch_total(a, b):
            return a + b

        assert await mend_no_oracle.run("total", "Total", fetch_total, 1, 2) == 3


# ===========================================================================
# Nested blocks
# ===========================================================================


class TestNested:

    @pytest.mark.asyncio
    async def test_inner_repair_does_not_persist_outer(self, store):
        oracle = ScriptedOracle("lambda x: x + 1")
        mend = Mend(store=store, oracle=oracle)

        async def outer(x):
            inner = await mend.run("inner", "Increment", lambda x: x + undefined_step, x)  # noqa: F821
            return inner * 10

        assert await mend.run("outer", "Increment then scale", outer, 1) == 20
        assert store.blocks == {"inner": "lambda x: x + 1"}
        assert [request.block_id for request, _ in oracle.calls] == ["inner"]

    @pytest.mark.asyncio
    async def test_inner_failure_is_not_repaired_as_outer(self, store):
        oracle = ScriptedOracle(OracleProtocolError("inner", "no tool call"))
        mend = Mend(store=store, oracle=oracle, config=MendConfig(max_retries=2))

        async def outer():
            return await mend.run("inner", "Fails", failing_square, 1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await mend.run("outer", "Wraps inner", outer)
        assert exc_info.value.block_id == "inner"
        assert {request.block_id for request, _ in oracle.calls} == {"inner"}
        assert store.blocks == {}

    @pytest.mark.asyncio
    async def test_inner_failure_without_oracle_keeps_its_id(self, mend_no_oracle):
        async def outer():
            return await mend_no_oracle.run("inner", "Fails", failing_square, 1)

        with pytest.raises(ExecutionFailure) as exc_info:
            await mend_no_oracle.run("outer", "Wraps inner", outer)
        assert exc_info.value.block_id == "inner"

    @pytest.mark.asyncio
    async def test_outer_failure_after_inner_success(self, store):
        oracle = ScriptedOracle("lambda: 'fixed'")
        mend = Mend(store=store, oracle=oracle)

        async def outer():
            await mend.run("inner", "Works", lambda: 1)
            raise ValueError("outer broke")

        assert await mend.run("outer", "Outer", outer) == "fixed"
        assert [request.block_id for request, _ in oracle.calls] == ["outer"]
        assert "inner" not in store.blocks


# ===========================================================================
# Construction
# ===========================================================================


class TestConstruction:

    def test_store_and_callbacks_exclusive(self):
        with pytest.raises(ValueError):
            Mend(store=MemoryStore(), fetch=lambda block_id: None)

    def test_config_defaults(self):
        mend = Mend()
        assert mend.config.max_retries == 3
        assert mend.config.retry_delay == 0.0
        assert mend.oracle is None

    def test_config_validation(self):
        with pytest.raises(ValueError):
            MendConfig(max_retries=0)

    def test_config_has_no_storage_settings(self):
        assert set(MendConfig.model_fields) == {
            "max_retries", "retry_delay", "model", "temperature", "max_tokens",
        }

    @pytest.mark.asyncio
    async def test_from_env_without_key(self, monkeypatch):
        monkeypatch.delenv("MEND_OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        mend = Mend.from_env()
        assert mend.oracle is None
        with pytest.raises(ExecutionFailure):
            await mend.run("sq", "Square", failing_square, 2)

    @pytest.mark.asyncio
    async def test_from_env_with_key(self, monkeypatch):
        monkeypatch.setenv("MEND_OPENAI_API_KEY", "sk-test")
        config = MendConfig(model="gpt-test", max_tokens=64)
        async with Mend.from_env(config=config) as mend:
            assert isinstance(mend.oracle, OracleClient)
            assert isinstance(mend.oracle.client, AsyncOpenAIClient)
            assert mend.oracle.client.default_model == "gpt-test"

    @pytest.mark.asyncio
    async def test_from_env_with_explicit_llm(self, monkeypatch):
        monkeypatch.delenv("MEND_OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        llm = ScriptedLLM(tool_response("sq", "lambda x: x * x"))
        store = MemoryStore()
        mend = Mend.from_env(store=store, llm=llm)

        assert await mend.run("sq", "Square", failing_square, 3) == 9
        await mend.aclose()
        assert not llm.closed

    def test_run_sync(self):
        mend = Mend(store=MemoryStore(), oracle=ScriptedOracle("lambda x: x * x"))
        assert mend.run_sync("sq", "Square", failing_square, 6) == 36
        assert mend.run_sync("sum", "Sum", "a + b", scope={"a": 1, "b": 2}) == 3
