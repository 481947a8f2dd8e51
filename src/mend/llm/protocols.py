"""LLM client protocol.

Defines the pluggable interface the correction oracle uses to talk to a
language model.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for pluggable async LLM clients.

    Any object with async chat() and aclose() methods matching this
    signature works. The built-in AsyncOpenAIClient implements this protocol.

    Responses are expected in OpenAI chat-completion shape: tool calls are
    read from ``response["choices"][0]["message"]["tool_calls"]``.
    """

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        """Send messages, return response dict."""
        ...

    async def aclose(self) -> None:
        """Release underlying resources."""
        ...
