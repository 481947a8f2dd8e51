"""Failure context builder.

Turns a runtime fault into a CorrectionRequest for the oracle. Pure data
transformation: every helper here degrades to a best-effort string rather
than raising.
"""

from __future__ import annotations

import inspect
import json
import textwrap
import traceback
from collections.abc import Sequence
from typing import Any

from mend.exceptions import ExecutionFailure, describe_exception
from mend.models import CodeVariant, CorrectionRequest


def callable_source(func: Any) -> str:
    """Return the dedented source of a callable, or its repr if unavailable."""
    try:
        return textwrap.dedent(inspect.getsource(func)).strip()
    except (OSError, TypeError):
        return repr(func)


def variant_source(variant: CodeVariant) -> str:
    """Source text of whatever actually ran."""
    if variant.source is not None:
        return variant.source
    return callable_source(variant.function)


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:  # a broken __repr__ must not stop the repair
        return f"<unrepresentable {type(value).__name__}>"


def serialize_arguments(args: Sequence[Any]) -> str:
    """JSON snapshot of call arguments; non-JSON values fall back to repr."""
    try:
        return json.dumps(list(args), default=_safe_repr)
    except (TypeError, ValueError, RecursionError):
        return _safe_repr(list(args))


def describe_error(error: BaseException) -> tuple[str, str | None]:
    """Return (``Type: message`` summary, formatted traceback or None).

    ExecutionFailure is unwrapped so the oracle sees the underlying fault.
    """
    if isinstance(error, ExecutionFailure):
        error = error.error
    summary = describe_exception(error)
    if error.__traceback__ is None:
        return summary, None
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return summary, trace


def build_request(
    block_id: str,
    description: str,
    original_code: str,
    error: BaseException,
    args: Sequence[Any] = (),
) -> CorrectionRequest:
    """Snapshot a fault into a CorrectionRequest."""
    summary, trace = describe_error(error)
    return CorrectionRequest(
        block_id=block_id,
        description=description,
        original_code=original_code,
        error=summary,
        traceback=trace,
        arguments=serialize_arguments(args),
    )
