"""Mend exception hierarchy.

All Mend-specific exceptions inherit from MendError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mend.models import CodeOrigin


def describe_exception(error: BaseException) -> str:
    """Return ``Type: message`` for an exception, even if its __str__ raises."""
    try:
        message = str(error)
    except Exception:  # a broken __str__ in user code
        message = "<exception str() failed>"
    return f"{type(error).__name__}: {message}"


class MendError(Exception):
    """Base exception for all Mend errors."""


class InvalidInputError(MendError):
    """Raised when a block implementation or scope cannot be used at all.

    Fatal: no repair is attempted.
    """


class ExecutionFailure(MendError):
    """Raised when a block's code raises while running.

    The underlying exception is kept on ``error`` and as ``__cause__``.
    """

    def __init__(self, block_id: str, origin: CodeOrigin, error: BaseException) -> None:
        self.block_id = block_id
        self.origin = origin
        self.error = error
        super().__init__(
            f"Error executing {origin.value} code for block '{block_id}': "
            f"{describe_exception(error)}"
        )


class OracleError(MendError):
    """Base for failures on the correction oracle side.

    Absorbed by the repair loop; only surfaced through RetryExhaustedError.
    """


class OracleProtocolError(OracleError):
    """Raised when an oracle response is malformed, mismatched or unparsable."""

    def __init__(self, block_id: str, reason: str) -> None:
        self.block_id = block_id
        self.reason = reason
        super().__init__(f"Invalid correction for block '{block_id}': {reason}")


class RetryExhaustedError(MendError):
    """All correction attempts for a block failed."""

    def __init__(
        self,
        block_id: str,
        attempts: int,
        original: BaseException,
        last_error: BaseException | None,
        history: list[str] | None = None,
    ) -> None:
        self.block_id = block_id
        self.attempts = attempts
        self.original = original
        self.last_error = last_error
        self.history = history or []
        last = describe_exception(last_error) if last_error is not None else "N/A"
        super().__init__(
            f"Max correction attempts ({attempts}) reached for block '{block_id}'. "
            f"Last correction error: {last}. Original error: {describe_exception(original)}"
        )


class PersistenceError(MendError):
    """Raised when saving an accepted correction fails. Never retried."""

    def __init__(self, block_id: str, error: BaseException) -> None:
        self.block_id = block_id
        self.error = error
        super().__init__(
            f"Failed to persist corrected code for block '{block_id}': "
            f"{describe_exception(error)}"
        )
