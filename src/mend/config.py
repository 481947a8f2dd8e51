"""Configuration model for Mend.

MendConfig holds repair-loop bounds and the tuning of the default
correction oracle. Nothing here reads files; environment lookups happen
only in explicit constructors such as :meth:`mend.runtime.Mend.from_env`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class MendConfig(BaseModel):
    """Per-instance Mend configuration."""

    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=0.0, ge=0.0)  # seconds between attempts
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = Field(default=1024, ge=1)
