"""SQLAlchemy ORM schema for Mend.

Defines all database tables: blocks, _mend_meta.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Mend ORM models."""

    pass


class BlockRow(Base):
    """Stored (repaired) code for one block, keyed by block id."""

    __tablename__ = "blocks"

    block_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MendMetaRow(Base):
    """Key-value metadata (schema_version)."""

    __tablename__ = "_mend_meta"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
