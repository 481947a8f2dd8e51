"""Domain models for Mend.

Frozen dataclasses for code variants, correction requests and repair
results, plus the pydantic model that validates oracle proposals.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, StrictStr

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")


class CodeOrigin(str, enum.Enum):
    """Where the code that runs for a block came from."""

    DEFAULT = "default"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class CodeVariant:
    """The implementation selected for one execution of a block.

    Exactly one of ``function`` and ``source`` is set.

    Attributes:
        origin: DEFAULT (caller-supplied) or PERSISTED (loaded from store).
        function: A callable implementation.
        source: Python source text.
    """

    origin: CodeOrigin
    function: Callable[..., Any] | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        if (self.function is None) == (self.source is None):
            raise ValueError("CodeVariant needs exactly one of function or source")

    @classmethod
    def default(cls, impl: Callable[..., Any] | str) -> CodeVariant:
        if isinstance(impl, str):
            return cls(origin=CodeOrigin.DEFAULT, source=impl)
        return cls(origin=CodeOrigin.DEFAULT, function=impl)

    @classmethod
    def persisted(cls, source: str) -> CodeVariant:
        return cls(origin=CodeOrigin.PERSISTED, source=source)

    @property
    def is_callable(self) -> bool:
        return self.function is not None


@dataclass(frozen=True)
class CorrectionRequest:
    """Snapshot of a runtime fault, sent to the correction oracle.

    Attributes:
        block_id: Identifier of the failing block.
        description: What the block is supposed to do.
        original_code: Source text of the code that actually ran.
        error: One-line ``Type: message`` summary of the fault.
        traceback: Formatted traceback, or None if unavailable.
        arguments: Serialized positional arguments of the failing call.
    """

    block_id: str
    description: str
    original_code: str
    error: str
    traceback: str | None
    arguments: str


class CorrectionProposal(BaseModel):
    """Arguments of a ``propose_corrected_block`` tool call.

    Exactly these two string fields; anything else is rejected.
    """

    model_config = ConfigDict(extra="forbid")

    block_id: StrictStr
    corrected_code: StrictStr


@dataclass(frozen=True)
class RepairResult(Generic[T]):
    """Result of a successful repair loop.

    Attributes:
        value: Return value of the corrected code.
        code: The accepted (and persisted) correction.
        attempts: Total attempts (1 = first proposal worked).
        history: Failure diagnoses of earlier attempts (None if first try).
    """

    value: T
    code: str
    attempts: int
    history: list[str] | None = None
