"""Prompt templates for LLM-backed Mend operations."""

from mend.prompts.correction import (
    CORRECTION_SYSTEM,
    CORRECTION_TOOL_NAME,
    build_correction_prompt,
    build_correction_tool,
)

__all__ = [
    "CORRECTION_SYSTEM",
    "CORRECTION_TOOL_NAME",
    "build_correction_prompt",
    "build_correction_tool",
]
