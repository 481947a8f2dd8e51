"""Repository for stored block code.

BlockRepository is the abstract contract; SqlBlockRepository implements it
with SQLAlchemy 2.0-style queries (select() + session.execute()). Each call
opens its own short-lived session so the repository can be used from
worker threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import select

from mend.storage.schema import BlockRow

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker


class BlockRepository(ABC):
    """Abstract interface for block code storage operations."""

    @abstractmethod
    def get_code(self, block_id: str) -> str | None:
        """Get stored code for a block. Returns None if not found."""
        ...

    @abstractmethod
    def upsert(self, block_id: str, code: str) -> None:
        """Insert or replace the code for a block."""
        ...

    @abstractmethod
    def delete(self, block_id: str) -> bool:
        """Delete a block. Returns True if it existed."""
        ...

    @abstractmethod
    def list_all(self) -> Sequence[BlockRow]:
        """All stored blocks, ordered by block id."""
        ...


class SqlBlockRepository(BlockRepository):
    """SQLAlchemy implementation of the block repository."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        engine: Engine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    def get_code(self, block_id: str) -> str | None:
        with self._session_factory() as session:
            row = session.get(BlockRow, block_id)
            return row.code if row is not None else None

    def upsert(self, block_id: str, code: str) -> None:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        with self._session_factory() as session:
            row = session.get(BlockRow, block_id)
            if row is None:
                session.add(BlockRow(block_id=block_id, code=code, created_at=now, updated_at=now))
            else:
                row.code = code
                row.updated_at = now
            session.commit()

    def delete(self, block_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(BlockRow, block_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_all(self) -> Sequence[BlockRow]:
        with self._session_factory() as session:
            stmt = select(BlockRow).order_by(BlockRow.block_id)
            return list(session.execute(stmt).scalars().all())

    def close(self) -> None:
        """Dispose of the engine, if this repository owns one."""
        if self._engine is not None:
            self._engine.dispose()
