"""SQLAlchemy-backed storage for Mend block code."""

from mend.storage.engine import create_mend_engine, create_session_factory, init_db
from mend.storage.repositories import BlockRepository, SqlBlockRepository
from mend.storage.schema import Base, BlockRow

__all__ = [
    "Base",
    "BlockRow",
    "BlockRepository",
    "SqlBlockRepository",
    "create_mend_engine",
    "create_session_factory",
    "init_db",
]
