"""Embedding ORM model.

One row per ``(uri, model_name)`` pair; the vector lives in ``embedding`` as
a float64 blob and is exposed decoded through :attr:`Embedding.vector`.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel

from ees.infra.search.vector_codec import decode_vector, vector_dimensions


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Embedding(SQLModel, table=True):
    __tablename__ = "embedding"
    __table_args__ = (
        UniqueConstraint("uri", "model_name", name="uq_embedding_uri_model"),
    )

    id: int | None = Field(default=None, primary_key=True)
    uri: str = Field(index=True)
    model_name: str = Field(index=True)
    text: str
    embedding: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    task_type: str | None = Field(default=None, index=True)
    original_content: str | None = None
    converted_format: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def vector(self) -> list[float]:
        return decode_vector(self.embedding)

    @property
    def dimensions(self) -> int:
        return vector_dimensions(self.embedding)
