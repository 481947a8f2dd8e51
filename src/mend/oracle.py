"""Correction oracle client.

Sends a CorrectionRequest to an LLM with exactly one tool exposed
(``propose_corrected_block``), then validates the structured reply
defensively: the response is untrusted and may be malformed.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from mend.compiler import validate_syntax
from mend.exceptions import OracleError, OracleProtocolError, describe_exception
from mend.llm.client import AsyncOpenAIClient
from mend.llm.errors import LLMClientError
from mend.models import CorrectionProposal
from mend.prompts.correction import (
    CORRECTION_SYSTEM,
    CORRECTION_TOOL_NAME,
    build_correction_prompt,
    build_correction_tool,
)
from mend.protocols import ToolCall

if TYPE_CHECKING:
    from mend.llm.protocols import LLMClient
    from mend.models import CorrectionRequest

logger = logging.getLogger(__name__)


def parse_proposal(response: dict, block_id: str) -> str:
    """Validate an LLM response and return the proposed code unchanged.

    Raises:
        OracleProtocolError: If there is no tool call, the wrong tool, bad
            arguments, a mismatched block id, empty code, or code that does
            not parse as a function literal.
        LLMResponseError: If the response envelope itself is malformed.
    """
    raw_calls = AsyncOpenAIClient.extract_tool_calls(response)
    if not raw_calls:
        content = AsyncOpenAIClient.extract_content(response)
        raise OracleProtocolError(
            block_id, f"no correction tool call in response. Content: {content!r}"
        )
    try:
        call = ToolCall.from_openai(raw_calls[0])
    except AttributeError as exc:
        raise OracleProtocolError(block_id, f"malformed tool call: {raw_calls[0]!r}") from exc

    if call.name != CORRECTION_TOOL_NAME:
        raise OracleProtocolError(block_id, f"unexpected tool call {call.name!r}")
    if not isinstance(call.arguments, dict):
        raise OracleProtocolError(
            block_id, f"tool arguments are not a JSON object: {call.arguments!r}"
        )

    # Field-level checks first so errors name the actual problem.
    code = call.arguments.get("corrected_code")
    echoed = call.arguments.get("block_id")
    if echoed != block_id:
        raise OracleProtocolError(
            block_id, f"mismatched block_id. Expected {block_id!r}, got {echoed!r}"
        )
    if not isinstance(code, str) or not code.strip():
        raise OracleProtocolError(block_id, "corrected_code is missing, empty or not a string")
    try:
        proposal = CorrectionProposal.model_validate(call.arguments)
    except ValidationError as exc:
        raise OracleProtocolError(block_id, f"invalid tool arguments: {exc}") from exc
    return check_proposal(proposal.corrected_code, block_id)


def check_proposal(code: object, block_id: str) -> str:
    """Accept proposed code only if it parses as a complete function literal.

    Applied to every proposal before it is persisted, whichever oracle made it.

    Raises:
        OracleProtocolError: If the code is not a non-empty string, does not
            parse, or defines no callable.
    """
    if not isinstance(code, str) or not code.strip():
        raise OracleProtocolError(block_id, f"proposed code is empty or not a string: {code!r}")
    try:
        validate_syntax(code)
    except (SyntaxError, ValueError) as exc:
        raise OracleProtocolError(
            block_id, f"proposed invalid Python: {exc}\nCode: {code}"
        ) from exc
    return code


class OracleClient:
    """Default correction oracle backed by an LLM client.

    Implements the CorrectionOracle protocol. The correction tool is built
    per request so the block id constraint applies to that call only.

    Usage::

        llm = AsyncOpenAIClient(api_key="sk-...")
        oracle = OracleClient(llm, model="gpt-4o-mini")
        code = await oracle.propose(request)
    """

    def __init__(
        self,
        client: LLMClient | Any,
        *,
        model: str | None = None,
        temperature: float | None = 0.0,
        max_tokens: int | None = 1024,
        system_prompt: str | None = None,
    ) -> None:
        """Initialize the oracle.

        Args:
            client: An LLM client conforming to the LLMClient protocol.
            model: Model to use. Falls back to the client's default.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens for the reply.
            system_prompt: Custom system prompt. Falls back to CORRECTION_SYSTEM.
        """
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt or CORRECTION_SYSTEM

    @property
    def client(self) -> LLMClient | Any:
        return self._client

    async def propose(self, request: CorrectionRequest, attempt: int = 1) -> str:
        """Ask the LLM for a correction and return the validated code.

        Raises:
            OracleProtocolError: If the reply fails validation.
            OracleError: If the LLM call itself fails.
        """
        tool = build_correction_tool(request.block_id)
        messages = [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": build_correction_prompt(request, attempt)},
        ]
        logger.info(
            "Requesting correction for block %s (attempt %d)", request.block_id, attempt
        )
        try:
            response = await self._client.chat(
                messages,
                model=self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                tools=[tool.to_openai()],
                tool_choice=tool.openai_choice(),
            )
        except OracleError:
            raise
        except Exception as exc:
            raise LLMClientError(
                f"Correction request for block '{request.block_id}' failed: "
                f"{describe_exception(exc)}"
            ) from exc

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Raw correction response: %s", json.dumps(response, default=repr))
        return parse_proposal(response, request.block_id)

    async def aclose(self) -> None:
        """Close the underlying LLM client if it supports closing."""
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()
