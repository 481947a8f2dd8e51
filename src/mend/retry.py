"""Bounded retry loop for block corrections.

Provides retry_correction() -- a strictly sequential loop that runs one
correction attempt at a time, absorbs oracle-side failures (and failures
of a corrected variant when it runs), and aggregates the last failure
with the original fault once every attempt is spent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from mend.exceptions import (
    ExecutionFailure,
    OracleError,
    RetryExhaustedError,
    describe_exception,
)
from mend.models import RepairResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that consume one attempt instead of propagating.
RETRYABLE = (OracleError, ExecutionFailure)


async def retry_correction(
    *,
    attempt: Callable[[int], Awaitable[tuple[T, str]]],
    block_id: str,
    original: BaseException,
    max_retries: int = 3,
    delay: float = 0.0,
) -> RepairResult[T]:
    """Run correction attempts until one succeeds or max_retries is reached.

    Flow:
        1. (value, code) = await attempt(n)
        2. On success: return RepairResult
        3. On OracleError / ExecutionFailure: record it; if n < max_retries,
           sleep ``delay`` seconds and goto 1 with n + 1
        4. Otherwise raise RetryExhaustedError
        Any other exception (e.g. PersistenceError) propagates at once.

    Args:
        attempt: Coroutine function taking the 1-based attempt number and
            returning (value, accepted code).
        block_id: Block being repaired, for messages.
        original: The execution failure that started the repair.
        max_retries: Maximum total attempts (default 3).
        delay: Seconds to wait between attempts (default 0, no backoff).

    Returns:
        RepairResult with the value, accepted code, attempt count and history.

    Raises:
        RetryExhaustedError: If every attempt fails.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")

    history: list[str] = []
    last_error: BaseException | None = None

    for attempt_num in range(1, max_retries + 1):
        try:
            value, code = await attempt(attempt_num)
        except RETRYABLE as exc:
            if isinstance(exc, ExecutionFailure) and exc.block_id != block_id:
                raise  # a nested block's failure is not ours to repair
            last_error = exc
            history.append(describe_exception(exc))
            logger.warning(
                "Correction attempt #%d failed for block %s: %s",
                attempt_num, block_id, exc,
            )
            if attempt_num < max_retries and delay > 0:
                await asyncio.sleep(delay)
            continue

        return RepairResult(
            value=value,
            code=code,
            attempts=attempt_num,
            history=history if history else None,
        )

    logger.error("All %d correction attempts failed for block %s", max_retries, block_id)
    raise RetryExhaustedError(
        block_id=block_id,
        attempts=max_retries,
        original=original,
        last_error=last_error,
        history=history,
    )
