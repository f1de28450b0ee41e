"""
Declarative base shared by the EduTrack tables.
"""

from datetime import datetime
from typing import Any, Dict, TypeVar

from sqlalchemy import JSON, DateTime, Integer, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ModelType = TypeVar("ModelType", bound="Base")

# Embedded documents are stored as JSONB on PostgreSQL and plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(AsyncAttrs, DeclarativeBase):
    """
    Every table gets an integer surrogate key and audit timestamps.

    Timestamps are filled by the database, so they are only available on
    instances read back after the insert.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"
