"""Block stores and the persistence sink.

Stores implement the BlockStore protocol (async fetch/save). The runtime
defaults to NullStore, which remembers nothing. None of these stores lock:
concurrent saves for the same block id race and the last writer wins.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mend.exceptions import PersistenceError, describe_exception

if TYPE_CHECKING:
    from mend.protocols import BlockStore
    from mend.storage.repositories import SqlBlockRepository

logger = logging.getLogger(__name__)


class NullStore:
    """Store that never has code and discards saves."""

    async def fetch(self, block_id: str) -> str | None:
        return None

    async def save(self, block_id: str, code: str) -> None:
        return None


class MemoryStore:
    """Dict-backed store, handy for tests and single-process use."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.blocks: dict[str, str] = dict(initial or {})

    async def fetch(self, block_id: str) -> str | None:
        return self.blocks.get(block_id)

    async def save(self, block_id: str, code: str) -> None:
        self.blocks[block_id] = code


class CallbackStore:
    """Adapts a pair of caller-supplied fetch/save functions.

    Either function may be sync or async; a missing one behaves like
    NullStore.
    """

    def __init__(
        self,
        fetch: Callable[[str], Any] | None = None,
        save: Callable[[str, str], Any] | None = None,
    ) -> None:
        self._fetch = fetch
        self._save = save

    async def fetch(self, block_id: str) -> str | None:
        if self._fetch is None:
            return None
        result = self._fetch(block_id)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def save(self, block_id: str, code: str) -> None:
        if self._save is None:
            return
        result = self._save(block_id, code)
        if inspect.isawaitable(result):
            await result


class SqlBlockStore:
    """BlockStore over a SQLAlchemy repository.

    Blocking database calls run in a worker thread so they do not stall
    the event loop.

    Usage::

        store = SqlBlockStore.open(".mend.db")
        mend = Mend(store=store)
    """

    def __init__(self, repository: SqlBlockRepository) -> None:
        self._repo = repository

    @classmethod
    def open(cls, db_path: str = ":memory:", *, url: str | None = None) -> SqlBlockStore:
        """Create the engine and tables, then wrap them in a store."""
        from mend.storage.engine import create_mend_engine, create_session_factory, init_db
        from mend.storage.repositories import SqlBlockRepository

        engine = create_mend_engine(db_path, url=url)
        init_db(engine)
        return cls(SqlBlockRepository(create_session_factory(engine), engine=engine))

    async def fetch(self, block_id: str) -> str | None:
        return await asyncio.to_thread(self._repo.get_code, block_id)

    async def save(self, block_id: str, code: str) -> None:
        await asyncio.to_thread(self._repo.upsert, block_id, code)

    async def delete(self, block_id: str) -> bool:
        return await asyncio.to_thread(self._repo.delete, block_id)

    async def list_blocks(self) -> list:
        return await asyncio.to_thread(self._repo.list_all)

    def close(self) -> None:
        self._repo.close()


def as_store(
    store: BlockStore | None = None,
    fetch: Callable[[str], Any] | None = None,
    save: Callable[[str, str], Any] | None = None,
) -> BlockStore:
    """Pick the store for a runtime from the constructor options."""
    if store is not None:
        if fetch is not None or save is not None:
            raise ValueError("Pass either store= or fetch=/save=, not both")
        return store
    if fetch is None and save is None:
        return NullStore()
    return CallbackStore(fetch, save)


async def persist(store: BlockStore, block_id: str, code: str) -> None:
    """Save an accepted correction. Failures raise PersistenceError, unretried."""
    try:
        await store.save(block_id, code)
    except Exception as exc:
        logger.error(
            "Failed to save corrected code for block %s: %s", block_id, describe_exception(exc)
        )
        raise PersistenceError(block_id, exc) from exc
    logger.info("Saved corrected code for block %s", block_id)
