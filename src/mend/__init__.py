"""Mend: self-repairing runtime for named code blocks.

Blocks run from a caller's default implementation or from code stored by
an earlier repair. When a block raises, a correction oracle proposes
replacement code, which is validated, persisted and run in its place.
"""

from mend._version import __version__

# Core entry point
from mend.runtime import Mend

# Configuration
from mend.config import MendConfig

# Domain models
from mend.models import (
    CodeOrigin,
    CodeVariant,
    CorrectionProposal,
    CorrectionRequest,
    RepairResult,
)

# Protocols
from mend.protocols import BlockStore, CorrectionOracle, ToolCall

# Stores
from mend.store import CallbackStore, MemoryStore, NullStore, SqlBlockStore

# Oracle
from mend.oracle import OracleClient, check_proposal, parse_proposal

# Building blocks
from mend.compiler import compile_scoped, infer_parameters, load_function, validate_syntax
from mend.context import build_request
from mend.executor import execute
from mend.resolver import resolve
from mend.retry import retry_correction

# Exceptions
from mend.exceptions import (
    ExecutionFailure,
    InvalidInputError,
    MendError,
    OracleError,
    OracleProtocolError,
    PersistenceError,
    RetryExhaustedError,
)

__all__ = [
    "__version__",
    # Core
    "Mend",
    "MendConfig",
    # Models
    "CodeOrigin",
    "CodeVariant",
    "CorrectionProposal",
    "CorrectionRequest",
    "RepairResult",
    # Protocols
    "BlockStore",
    "CorrectionOracle",
    "ToolCall",
    # Stores
    "CallbackStore",
    "MemoryStore",
    "NullStore",
    "SqlBlockStore",
    # Oracle
    "OracleClient",
    "parse_proposal",
    "check_proposal",
    # Building blocks
    "compile_scoped",
    "infer_parameters",
    "load_function",
    "validate_syntax",
    "build_request",
    "execute",
    "resolve",
    "retry_correction",
    # Exceptions
    "MendError",
    "InvalidInputError",
    "ExecutionFailure",
    "OracleError",
    "OracleProtocolError",
    "RetryExhaustedError",
    "PersistenceError",
]
