"""Shared document storage — one row holds one whole collection."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from .base import Base


class Document(Base):
    """A serialized collection (orders, stock units).

    There is deliberately no per-record table: writers replace the payload
    as a whole, exactly like the HTTP document backend.
    """

    __tablename__ = "documents"
    name = Column(String(100), primary_key=True)
    payload = Column(JSON, nullable=False, default=list)
    record_count = Column(Integer, default=0)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
