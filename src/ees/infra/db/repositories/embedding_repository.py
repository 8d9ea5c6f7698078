"""Repository for Embedding records. No business logic; caller owns the transaction."""
from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ees.domain.exceptions import NotFoundError, StoreError
from ees.infra.search.vector_codec import encode_vector
from ees.models.embedding import Embedding

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

_UPDATABLE = frozenset(
    {"text", "vector", "model_name", "task_type", "original_content", "converted_format"}
)


@dataclass(frozen=True, slots=True)
class EmbeddingFilters:
    uri_pattern: str | None = None
    model_name: str | None = None
    task_type: str | None = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def effective_page(self) -> int:
        return max(self.page, 1)

    @property
    def effective_limit(self) -> int:
        return min(max(self.limit, 1), MAX_PAGE_SIZE)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to {operation}: {exc}") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingRepository:
    def __init__(self, session: Session) -> None:
        self._s = session

    def _insert(self):
        dialect = self._s.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(Embedding)
        return sqlite.insert(Embedding)

    def create(
        self,
        *,
        uri: str,
        model_name: str,
        text: str,
        vector: Sequence[float],
        task_type: str | None = None,
        original_content: str | None = None,
        converted_format: str | None = None,
    ) -> Embedding:
        """Insert, or overwrite text/vector of the existing ``(uri, model_name)`` row.

        The conflict is resolved by the database in a single statement, so two
        concurrent creates for the same pair can never both insert.
        """
        now = _utcnow()
        stmt = self._insert().values(
            uri=uri,
            model_name=model_name,
            text=text,
            embedding=encode_vector(vector),
            task_type=task_type,
            original_content=original_content,
            converted_format=converted_format,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["uri", "model_name"],
            set_={
                "text": stmt.excluded["text"],
                "embedding": stmt.excluded["embedding"],
                "updated_at": stmt.excluded["updated_at"],
            },
        )
        with _store_errors("create embedding"):
            self._s.exec(stmt)
            record = self._s.exec(
                select(Embedding)
                .where(Embedding.uri == uri, Embedding.model_name == model_name)
                .execution_options(populate_existing=True)
            ).one()
        return record

    def get_by_id(self, embedding_id: int) -> Embedding | None:
        with _store_errors("load embedding"):
            return self._s.get(Embedding, embedding_id)

    def find_by_uri(self, uri: str, model_name: str) -> Embedding | None:
        with _store_errors("load embedding"):
            return self._s.exec(
                select(Embedding).where(
                    Embedding.uri == uri, Embedding.model_name == model_name
                )
            ).first()

    def find_all(self, filters: EmbeddingFilters) -> tuple[list[Embedding], int]:
        """Return one page of records plus the total matching the same predicate."""
        conditions = []
        if filters.uri_pattern:
            conditions.append(Embedding.uri.like(f"%{filters.uri_pattern}%"))
        if filters.model_name:
            conditions.append(Embedding.model_name == filters.model_name)
        if filters.task_type:
            conditions.append(Embedding.task_type == filters.task_type)

        limit = filters.effective_limit
        offset = (filters.effective_page - 1) * limit
        with _store_errors("list embeddings"):
            total = self._s.exec(
                select(func.count()).select_from(Embedding).where(*conditions)
            ).one()
            records = self._s.exec(
                select(Embedding)
                .where(*conditions)
                .order_by(Embedding.created_at, Embedding.id)
                .offset(offset)
                .limit(limit)
            ).all()
        return list(records), total

    def list_by_model(self, model_name: str) -> list[Embedding]:
        with _store_errors("list embeddings"):
            return list(
                self._s.exec(
                    select(Embedding)
                    .where(Embedding.model_name == model_name)
                    .order_by(Embedding.id)
                ).all()
            )

    def update(self, embedding_id: int, **fields) -> Embedding:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        record = self.get_by_id(embedding_id)
        if record is None:
            raise NotFoundError(f"Embedding {embedding_id} not found")

        for name, value in fields.items():
            if name == "vector":
                record.embedding = encode_vector(value)
            else:
                setattr(record, name, value)
        record.updated_at = _utcnow()
        with _store_errors("update embedding"):
            self._s.add(record)
            self._s.flush()
        return record

    def delete(self, embedding_id: int) -> bool:
        record = self.get_by_id(embedding_id)
        if record is None:
            return False
        with _store_errors("delete embedding"):
            self._s.delete(record)
            self._s.flush()
        return True

    def delete_all(self) -> int:
        with _store_errors("delete embeddings"):
            result = self._s.exec(delete(Embedding))
        return result.rowcount or 0

    def usage_by_model(self) -> dict[str, int]:
        with _store_errors("aggregate embeddings"):
            rows = self._s.exec(
                select(Embedding.model_name, func.count())
                .group_by(Embedding.model_name)
                .order_by(Embedding.model_name)
            ).all()
        return {model: n for model, n in rows}
