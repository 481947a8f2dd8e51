"""Correction prompts and tool schema for the correction oracle.

Provides the system prompt, the user prompt builder that renders a
CorrectionRequest, and the ``propose_corrected_block`` tool definition.
The tool is built per request so its description names the block being
corrected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mend.toolkit import ToolDefinition

if TYPE_CHECKING:
    from mend.models import CorrectionRequest

CORRECTION_TOOL_NAME: str = "propose_corrected_block"

CORRECTION_SYSTEM: str = (
    "You are an expert Python debugging assistant. You correct a Python "
    "function block identified by a block ID. Review the information you "
    "are given and submit your correction with the "
    f"'{CORRECTION_TOOL_NAME}' tool. Only call the tool; do not reply "
    "with text."
)


def build_correction_tool(block_id: str) -> ToolDefinition:
    """Return the correction tool, bound to one block id."""
    return ToolDefinition(
        name=CORRECTION_TOOL_NAME,
        description=(
            "Propose a corrected, syntactically valid Python function to fix "
            f"an error in block ID {block_id}."
        ),
        parameters={
            "type": "object",
            "properties": {
                "block_id": {
                    "type": "string",
                    "description": (
                        f"The unique ID of the code block (must be {block_id})."
                    ),
                },
                "corrected_code": {
                    "type": "string",
                    "description": (
                        "The corrected, complete Python function: a lambda "
                        "expression or a def/async def (imports may precede it)."
                    ),
                },
            },
            "required": ["block_id", "corrected_code"],
            "additionalProperties": False,
        },
    )


def build_correction_prompt(request: CorrectionRequest, attempt: int = 1) -> str:
    """Render a CorrectionRequest as the user message sent to the oracle."""
    prompt = (
        f"BLOCK ID: {request.block_id}\n"
        f"DESCRIPTION OF WHAT THE BLOCK SHOULD DO:\n{request.description}\n\n"
        f"ORIGINAL CODE:\n```python\n{request.original_code}\n```\n\n"
        f"ERROR THAT OCCURRED:\n{request.error}\n\n"
    )
    if request.traceback:
        prompt += f"TRACEBACK:\n{request.traceback}\n"
    prompt += f"ARGUMENTS (positional, JSON):\n{request.arguments}\n\n"
    if attempt > 1:
        prompt += (
            f"This is correction attempt {attempt}; earlier proposals were "
            "rejected or failed when run.\n\n"
        )
    prompt += (
        "CORRECTION REQUIREMENTS:\n"
        "1. Fix the reported error.\n"
        "2. Fulfil the description above.\n"
        "3. Return a complete, syntactically valid Python function: either a "
        "lambda expression (e.g. 'lambda x: x * x') or a def / async def. "
        "Imports and helpers may precede the function; the last top-level "
        "function is the one that is called.\n"
        "4. The function is called with the positional arguments listed above "
        "and must accept them.\n\n"
        f"Call '{CORRECTION_TOOL_NAME}' with block_id set to exactly "
        f'"{request.block_id}" and corrected_code set to your function.'
    )
    return prompt
