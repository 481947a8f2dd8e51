"""Built-in OpenAI-compatible async httpx client with tenacity retry.

Provides an async HTTP client for OpenAI-compatible chat completion APIs.
Reads configuration from constructor arguments or environment variables.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
import tenacity

from mend.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}

API_KEY_ENV_VARS = ("MEND_OPENAI_API_KEY", "OPENAI_API_KEY")
BASE_URL_ENV_VAR = "MEND_OPENAI_BASE_URL"


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def api_key_from_env() -> str:
    """Return the first API key found in the environment, or ''."""
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name, "")
        if value:
            return value
    return ""


class AsyncOpenAIClient:
    """Async httpx client for OpenAI-compatible chat completions.

    Implements the LLMClient protocol. Supports retry with exponential
    backoff for transient errors (429, 5xx). Fails immediately on
    authentication errors (401, 403).

    Usage::

        async with AsyncOpenAIClient(api_key="sk-...") as client:
            response = await client.chat([{"role": "user", "content": "Hello"}])
            calls = AsyncOpenAIClient.extract_tool_calls(response)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str = "gpt-4o-mini",
        timeout: float = 120.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the OpenAI-compatible client.

        Args:
            api_key: API key. Falls back to MEND_OPENAI_API_KEY, then
                OPENAI_API_KEY env vars.
            base_url: API base URL. Falls back to MEND_OPENAI_BASE_URL env var,
                then to https://api.openai.com/v1.
            default_model: Default model for chat requests.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of attempts for retryable errors.
            transport: Optional httpx transport (tests pass a MockTransport).

        Raises:
            LLMConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or api_key_from_env()
        if not self._api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set MEND_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url
            or os.environ.get(BASE_URL_ENV_VAR, "https://api.openai.com/v1")
        ).rstrip("/")
        self._default_model = default_model
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    @property
    def default_model(self) -> str:
        return self._default_model

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        """Send chat completion request with retry.

        Uses tenacity.AsyncRetrying programmatically (not as decorator) so
        that max_retries is configurable per-instance.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model to use. Falls back to default_model.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
            **kwargs: Additional payload parameters forwarded to the API
                (e.g. ``tools``, ``tool_choice``).

        Returns:
            Full response dict with 'choices', 'usage', 'model', etc.

        Raises:
            LLMAuthError: On 401/403 (no retry).
            LLMRateLimitError: On 429 after all retries exhausted.
            LLMResponseError: On unexpected response format or other
                non-retryable HTTP errors.
        """
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return await retryer(
                self._do_chat,
                messages,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise LLMResponseError(f"Chat completion request failed: {exc}") from exc

    async def _do_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict:
        """Execute a single chat completion request (no retry)."""
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        payload.update(kwargs)

        response = await self._client.post(
            f"{self._base_url}/chat/completions",
            json=payload,
        )

        # Check for auth errors before raise_for_status
        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise LLMAuthError(
                f"Authentication failed: HTTP {response.status_code} - "
                f"{response.text}"
            )

        if response.status_code == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise LLMRateLimitError(
                f"Rate limited: HTTP 429 - {response.text}",
                retry_after=retry_after,
            )

        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseError(f"Response is not JSON: {response.text[:200]}") from exc
        if not isinstance(data, dict) or "choices" not in data:
            raise LLMResponseError(
                f"Unexpected response format: missing 'choices' key. "
                f"Response: {data}"
            )
        return data

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncOpenAIClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    @staticmethod
    def extract_message(response: dict) -> dict:
        """Extract the assistant message dict from a response dict.

        Raises:
            LLMResponseError: If the response format is unexpected.
        """
        try:
            message = response["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Cannot extract message from response: {exc}. "
                f"Response: {response}"
            ) from exc
        if not isinstance(message, dict):
            raise LLMResponseError(f"Message is not an object: {message!r}")
        return message

    @staticmethod
    def extract_content(response: dict) -> str:
        """Extract the assistant's message content from a response dict."""
        return AsyncOpenAIClient.extract_message(response).get("content") or ""

    @staticmethod
    def extract_tool_calls(response: dict) -> list[dict]:
        """Extract raw OpenAI tool call dicts from a response dict.

        Returns an empty list when the assistant answered in plain text.
        """
        calls = AsyncOpenAIClient.extract_message(response).get("tool_calls") or []
        if not isinstance(calls, list):
            raise LLMResponseError(f"tool_calls is not a list: {calls!r}")
        return calls
