"""LLM client infrastructure for Mend.

Provides an async OpenAI-compatible HTTP client and the pluggable LLM
client protocol used by the default correction oracle.
"""

from mend.llm.client import AsyncOpenAIClient, api_key_from_env
from mend.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from mend.llm.protocols import LLMClient

__all__ = [
    "AsyncOpenAIClient",
    "api_key_from_env",
    "LLMClient",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMAuthError",
    "LLMResponseError",
]
