"""Shared test fixtures for Mend.

Provides in-memory stores, a SQLite-backed store and a plain runtime.
"""

import pytest

from mend import Mend, MemoryStore, MendConfig, SqlBlockStore
from mend.storage.engine import create_mend_engine, init_db


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_mend_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sql_store():
    """SqlBlockStore over an in-memory database."""
    s = SqlBlockStore.open(":memory:")
    yield s
    s.close()


@pytest.fixture
def config() -> MendConfig:
    return MendConfig(max_retries=3)


@pytest.fixture
def mend_no_oracle(store: MemoryStore) -> Mend:
    """Runtime with a memory store and repair disabled."""
    return Mend(store=store)
