"""Tool definitions exposed to the correction oracle.

Frozen dataclass describing a single function-calling tool in OpenAI
function-calling format.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolDefinition:
    """A single tool definition for LLM consumption.

    Attributes:
        name: Tool name (e.g. "propose_corrected_block").
        description: Human-readable description of when/why to use this tool.
        parameters: JSON Schema dict describing tool parameters.
    """

    name: str
    description: str
    parameters: dict

    def to_openai(self) -> dict:
        """Convert to OpenAI function-calling format.

        Returns:
            Dict with "type": "function" and nested "function" object.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def openai_choice(self) -> dict:
        """``tool_choice`` value that forces a call to this tool."""
        return {"type": "function", "function": {"name": self.name}}
