"""Mend runtime: resolve, execute and self-repair named code blocks.

``Mend.run`` picks the stored or default implementation of a block, runs
it, and on a runtime fault asks the correction oracle for replacement code,
persists the accepted correction and runs it instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from mend.config import MendConfig
from mend.context import build_request, variant_source
from mend.exceptions import ExecutionFailure, MendError, OracleError, describe_exception
from mend.executor import execute, execute_correction
from mend.oracle import OracleClient, check_proposal
from mend.resolver import resolve
from mend.retry import retry_correction
from mend.store import as_store, persist

if TYPE_CHECKING:
    from mend.llm.protocols import LLMClient
    from mend.models import CorrectionRequest
    from mend.protocols import BlockStore, CorrectionOracle

logger = logging.getLogger(__name__)


class Mend:
    """Runs named code blocks and repairs them when they fail.

    Usage::

        store = MemoryStore()
        mend = Mend(store=store, oracle=my_oracle)
        total = await mend.run("add-1", "Add two numbers", "lambda a, b: a + b", 2, 3)

    Store and oracle are shared by every call on the instance. Calls with
    distinct block ids may run concurrently; calls sharing an id are not
    serialized and their saves may race.
    """

    def __init__(
        self,
        *,
        store: BlockStore | None = None,
        fetch: Callable[[str], Any] | None = None,
        save: Callable[[str, str], Any] | None = None,
        oracle: CorrectionOracle | None = None,
        config: MendConfig | None = None,
    ) -> None:
        """Initialize the runtime.

        Args:
            store: A BlockStore. Mutually exclusive with fetch/save.
            fetch: Function returning stored code for a block id (sync or async).
            save: Function storing code under a block id (sync or async).
            oracle: Correction oracle. None disables repair entirely.
            config: Retry and oracle tuning. Defaults to MendConfig().
        """
        self._store = as_store(store, fetch, save)
        self._oracle = oracle
        self._config = config or MendConfig()
        self._owns_oracle = False

    @classmethod
    def from_env(
        cls,
        *,
        store: BlockStore | None = None,
        fetch: Callable[[str], Any] | None = None,
        save: Callable[[str, str], Any] | None = None,
        config: MendConfig | None = None,
        llm: LLMClient | None = None,
    ) -> Mend:
        """Build a runtime with the default LLM oracle when credentials exist.

        Uses ``llm`` if given, otherwise an AsyncOpenAIClient when
        MEND_OPENAI_API_KEY (or OPENAI_API_KEY) is set. Without either,
        the runtime has no oracle and faults propagate unrepaired.
        """
        from mend.llm.client import AsyncOpenAIClient, api_key_from_env

        config = config or MendConfig()
        owns = False
        if llm is None and api_key_from_env():
            llm = AsyncOpenAIClient(default_model=config.model)
            owns = True
        oracle = None
        if llm is not None:
            oracle = OracleClient(
                llm,
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
            logger.info("Correction oracle configured (model: %s)", config.model)
        else:
            logger.info("No correction oracle configured")
        mend = cls(store=store, fetch=fetch, save=save, oracle=oracle, config=config)
        mend._owns_oracle = owns
        return mend

    @property
    def store(self) -> BlockStore:
        return self._store

    @property
    def oracle(self) -> CorrectionOracle | None:
        return self._oracle

    @property
    def config(self) -> MendConfig:
        return self._config

    async def run(
        self,
        block_id: str,
        description: str,
        impl: Callable[..., Any] | str,
        *args: Any,
        scope: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run a block, repairing it through the oracle if it fails.

        Args:
            block_id: Stable identifier of this block. Nested blocks need
                their own ids.
            description: What the block should do, for the oracle.
            impl: Default implementation: a callable or Python source text.
            *args: Positional arguments for the block.
            scope: Names injected into default source text.

        Returns:
            The block's result (awaited if it was awaitable).

        Raises:
            InvalidInputError: If impl is neither callable nor a string.
            ExecutionFailure: If the block fails and no oracle is configured.
            RetryExhaustedError: If every correction attempt fails.
            PersistenceError: If saving an accepted correction fails.
        """
        variant = await resolve(self._store, block_id, impl)
        try:
            return await execute(variant, block_id, args, scope)
        except ExecutionFailure as failure:
            if failure.block_id != block_id:
                raise
            if self._oracle is None:
                logger.info("No oracle configured; cannot repair block %s", block_id)
                raise
            logger.info(
                "Starting correction for block %s (max attempts: %d)",
                block_id, self._config.max_retries,
            )
            request = build_request(
                block_id, description, variant_source(variant), failure, args
            )
            return await self._repair(request, failure, args)

    async def _repair(
        self,
        request: CorrectionRequest,
        failure: ExecutionFailure,
        args: tuple[Any, ...],
    ) -> Any:
        block_id = request.block_id
        oracle = self._oracle

        async def attempt(attempt_num: int) -> tuple[Any, str]:
            try:
                proposed = await oracle.propose(request, attempt_num)
            except MendError:
                raise
            except Exception as exc:
                raise OracleError(
                    f"Correction oracle failed for block '{block_id}': "
                    f"{describe_exception(exc)}"
                ) from exc
            code = check_proposal(proposed, block_id)
            await persist(self._store, block_id, code)
            logger.info("Executing corrected code for block %s", block_id)
            value = await execute_correction(code, block_id, args)
            return value, code

        result = await retry_correction(
            attempt=attempt,
            block_id=block_id,
            original=failure,
            max_retries=self._config.max_retries,
            delay=self._config.retry_delay,
        )
        logger.info(
            "Block %s repaired after %d attempt(s)", block_id, result.attempts
        )
        return result.value

    def run_sync(
        self,
        block_id: str,
        description: str,
        impl: Callable[..., Any] | str,
        *args: Any,
        scope: Mapping[str, Any] | None = None,
    ) -> Any:
        """Blocking wrapper around :meth:`run` for code without an event loop."""
        return asyncio.run(self.run(block_id, description, impl, *args, scope=scope))

    async def aclose(self) -> None:
        """Close the oracle's LLM client if this runtime created it."""
        if self._owns_oracle and self._oracle is not None:
            await self._oracle.aclose()

    async def __aenter__(self) -> Mend:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
