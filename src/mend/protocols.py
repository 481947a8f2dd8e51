"""Protocol definitions for Mend.

Defines the pluggable interfaces the runtime talks to (BlockStore,
CorrectionOracle) and the provider-agnostic ToolCall dataclass used to
read structured invocations out of LLM responses.

No SQLAlchemy or httpx imports allowed in this module -- pure domain protocols.
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from mend.models import CorrectionRequest


@runtime_checkable
class BlockStore(Protocol):
    """Persistent store for block code, keyed by block id.

    The built-in stores live in :mod:`mend.store`. No locking is implied:
    concurrent saves for the same id may race, last writer wins.
    """

    async def fetch(self, block_id: str) -> str | None:
        """Return stored code for block_id, or None if absent."""
        ...

    async def save(self, block_id: str, code: str) -> None:
        """Store code under block_id, replacing any previous code."""
        ...


@runtime_checkable
class CorrectionOracle(Protocol):
    """Anything that proposes replacement source text for a failing block.

    The built-in :class:`mend.oracle.OracleClient` implements this over an
    LLM. Implementations raise :class:`mend.exceptions.OracleError`
    subclasses for failures the repair loop should retry.
    """

    async def propose(self, request: CorrectionRequest, attempt: int = 1) -> str:
        """Return validated corrected code for the request."""
        ...


@dataclass(frozen=True)
class ToolCall:
    """A tool/function invocation requested by the LLM.

    Arguments stay as received when they are not a JSON string, so that
    callers can reject non-object payloads themselves.
    """

    id: str
    name: str
    arguments: object
    type: str = "function"

    @classmethod
    def from_openai(cls, tc: dict) -> ToolCall:
        """Parse from OpenAI/compatible format.

        OpenAI sends arguments as a JSON string; this decodes it. Strings
        that are not valid JSON are kept raw.
        """
        function = tc.get("function") or {}
        raw_args = function.get("arguments")
        if isinstance(raw_args, str):
            try:
                arguments = _json.loads(raw_args)
            except _json.JSONDecodeError:
                arguments = raw_args
        else:
            arguments = raw_args
        return cls(
            id=tc.get("id", ""),
            name=function.get("name", ""),
            arguments=arguments,
            type=tc.get("type", "function"),
        )
