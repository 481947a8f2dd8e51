"""Executor: runs a resolved CodeVariant under one calling convention.

Callables are invoked directly. Source text goes through
:mod:`mend.compiler`: default text by scope-injected evaluation, persisted
text (and corrections) as a complete function literal. Anything awaitable
is awaited, so sync and async implementations behave the same.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from mend.compiler import compile_scoped, load_function
from mend.exceptions import ExecutionFailure, MendError
from mend.models import CodeOrigin, CodeVariant

logger = logging.getLogger(__name__)


async def _settle(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def execute(
    variant: CodeVariant,
    block_id: str,
    args: Sequence[Any] = (),
    scope: Mapping[str, Any] | None = None,
) -> Any:
    """Run a code variant and return its (awaited) result.

    Args:
        variant: The implementation chosen by the resolver.
        block_id: Block identifier, used for error messages and filenames.
        args: Positional arguments of the call.
        scope: Name -> value mapping, only used for DEFAULT source text.

    Raises:
        ExecutionFailure: Wrapping whatever the code (or its compilation)
            raised, tagged with the variant's origin.
        MendError: Raised by a nested ``Mend.run`` inside the block, or an
            InvalidInputError if the scope cannot be injected; never wrapped.
    """
    try:
        if variant.function is not None:
            return await _settle(variant.function(*args))
        if variant.origin is CodeOrigin.DEFAULT:
            run_block = compile_scoped(variant.source, scope, args, block_id=block_id)
            return await run_block()
        func = load_function(variant.source, block_id=block_id)
        return await _settle(func(*args))
    except MendError:
        # nested blocks and scope errors surface unchanged
        raise
    except Exception as exc:
        failure = ExecutionFailure(block_id, variant.origin, exc)
        logger.error("%s", failure)
        raise failure from exc


async def execute_correction(code: str, block_id: str, args: Sequence[Any] = ()) -> Any:
    """Run an accepted correction. It is persisted by then, so PERSISTED."""
    return await execute(CodeVariant.persisted(code), block_id, args)
