"""Resolver: decides which implementation of a block runs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mend.exceptions import InvalidInputError
from mend.models import CodeVariant

if TYPE_CHECKING:
    from mend.protocols import BlockStore

logger = logging.getLogger(__name__)


def check_impl(impl: object) -> None:
    """Raise InvalidInputError unless impl is a callable or source text."""
    if not (callable(impl) or isinstance(impl, str)):
        raise InvalidInputError(
            f"Invalid block implementation of type {type(impl).__name__}: "
            f"must be a callable or a source string"
        )


async def resolve(
    store: BlockStore,
    block_id: str,
    default: Callable[..., Any] | str,
) -> CodeVariant:
    """Pick the persisted variant if the store has one, else the default.

    Persisted code strictly overrides the default. Store errors propagate.
    """
    check_impl(default)
    saved = await store.fetch(block_id)
    if isinstance(saved, str) and saved.strip():
        logger.info("Using stored version for block %s", block_id)
        return CodeVariant.persisted(saved)
    logger.info("Using local version for block %s", block_id)
    return CodeVariant.default(default)
