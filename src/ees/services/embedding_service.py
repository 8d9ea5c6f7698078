"""Embedding use-case service: create, read, list, update, delete, search."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

import pydantic

from ees.domain.exceptions import EESError, NotFoundError, ValidationError
from ees.infra.cache.embedding_cache import (
    CacheNamespace,
    EmbeddingCache,
    embedding_key,
    search_key,
)
from ees.infra.db.repositories.embedding_repository import (
    DEFAULT_PAGE_SIZE,
    EmbeddingFilters,
    EmbeddingRepository,
)
from ees.infra.db.uow import UnitOfWork
from ees.models.task_type import TaskType, format_text_for_task
from ees.providers.factory import ProviderRegistry
from ees.schemas.embeddings import (
    BatchCreateResult,
    BatchItemResult,
    CreateResult,
    EmbeddingCreate,
    EmbeddingRead,
    EmbeddingUpdate,
    ListResult,
    SearchHit,
    SearchQuery,
    SearchResult,
)
from ees.search.vector_search import SimilarityMetric, search_vectors

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=pydantic.BaseModel)


def _validate(model: type[_M], data: Mapping[str, Any]) -> _M:
    """Build a DTO, re-raising pydantic's error as the domain ValidationError."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(messages) from exc


def _task_type(value: str | None) -> TaskType | None:
    if value is None:
        return None
    try:
        return TaskType(value)
    except ValueError:
        raise ValidationError(f"Unknown task type: {value!r}") from None


class EmbeddingService:
    def __init__(
        self,
        uow: UnitOfWork,
        registry: ProviderRegistry,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self._uow = uow
        self._registry = registry
        self._cache = cache if cache is not None else EmbeddingCache(enabled=False)

    @property
    def _repo(self) -> EmbeddingRepository:
        return EmbeddingRepository(self._uow.session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        uri: str,
        text: str,
        model_name: str | None = None,
        *,
        task_type: str | None = None,
        title: str | None = None,
        original_content: str | None = None,
        converted_format: str | None = None,
    ) -> CreateResult:
        """Embed *text* and store it under ``(uri, model)``, replacing any previous vector."""
        payload = _validate(
            EmbeddingCreate,
            {
                "uri": uri,
                "text": text,
                "model_name": model_name,
                "task_type": task_type,
                "title": title,
                "original_content": original_content,
                "converted_format": converted_format,
            },
        )
        return self._create(payload)

    def _create(self, payload: EmbeddingCreate) -> CreateResult:
        task = _task_type(payload.task_type)
        provider = self._registry.get_current_provider()
        model = provider.resolve_model(payload.model_name)
        prompt = format_text_for_task(payload.text, task, model, payload.title)
        response = provider.generate_embedding(prompt, model)

        record = self._repo.create(
            uri=payload.uri,
            model_name=response.model,
            text=payload.text,
            vector=response.embedding,
            task_type=task.value if task else None,
            original_content=payload.original_content,
            converted_format=payload.converted_format,
        )
        self._uow.commit()
        self._cache.delete(embedding_key(record.model_name, record.uri))
        logger.info("Stored embedding %s for %s (%s)", record.id, record.uri, record.model_name)
        return CreateResult(id=record.id, uri=record.uri, model_name=record.model_name)

    def create_batch(
        self, items: Iterable[EmbeddingCreate | Mapping[str, Any]]
    ) -> BatchCreateResult:
        """Create each item independently; one failure never aborts the rest."""
        results: list[BatchItemResult] = []
        for item in items:
            raw = item.model_dump() if isinstance(item, pydantic.BaseModel) else dict(item)
            uri = str(raw.get("uri", ""))
            try:
                created = self._create(_validate(EmbeddingCreate, raw))
            except EESError as e:
                if self._uow.active:
                    self._uow.rollback()
                logger.warning("Batch item %s failed: %s", uri, e.message)
                results.append(BatchItemResult(uri=uri, status="error", error=e.message))
                continue
            results.append(BatchItemResult(uri=uri, status="success", id=created.id))

        successful = sum(1 for r in results if r.status == "success")
        return BatchCreateResult(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )

    def update(
        self,
        embedding_id: int,
        *,
        text: str | None = None,
        task_type: str | None = None,
    ) -> EmbeddingRead:
        """Change text and/or task type; a text change regenerates the vector."""
        payload = _validate(EmbeddingUpdate, {"text": text, "task_type": task_type})
        repo = self._repo
        record = repo.get_by_id(embedding_id)
        if record is None:
            raise NotFoundError(f"Embedding {embedding_id} not found")

        fields: dict[str, Any] = {}
        task = _task_type(payload.task_type) if payload.task_type else _task_type(record.task_type)
        if payload.task_type is not None:
            fields["task_type"] = task.value
        if payload.text is not None:
            provider = self._registry.get_current_provider()
            prompt = format_text_for_task(payload.text, task, record.model_name)
            response = provider.generate_embedding(prompt, record.model_name)
            fields["text"] = payload.text
            fields["vector"] = response.embedding

        if fields:
            record = repo.update(embedding_id, **fields)
            self._uow.commit()
            self._cache.delete(embedding_key(record.model_name, record.uri))
        return EmbeddingRead.model_validate(record)

    def delete(self, embedding_id: int) -> bool:
        repo = self._repo
        record = repo.get_by_id(embedding_id)
        if record is None:
            return False
        key = embedding_key(record.model_name, record.uri)
        deleted = repo.delete(embedding_id)
        self._uow.commit()
        self._cache.delete(key)
        return deleted

    def delete_all(self) -> int:
        count = self._repo.delete_all()
        self._uow.commit()
        self._cache.delete_prefix(f"{CacheNamespace.EMBEDDING.value}:")
        logger.info("Deleted all %d embeddings", count)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, embedding_id: int) -> EmbeddingRead:
        record = self._repo.get_by_id(embedding_id)
        if record is None:
            raise NotFoundError(f"Embedding {embedding_id} not found")
        return EmbeddingRead.model_validate(record)

    def get_by_uri(self, uri: str, model_name: str | None = None) -> EmbeddingRead | None:
        model = model_name or self._registry.get_current_provider().resolve_model(None)
        key = embedding_key(model, uri)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        record = self._repo.find_by_uri(uri, model)
        if record is None:
            return None
        dto = EmbeddingRead.model_validate(record)
        self._cache.set(key, dto)
        return dto

    def list_embeddings(
        self,
        *,
        uri_filter: str | None = None,
        model_name: str | None = None,
        task_type: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ListResult:
        filters = EmbeddingFilters(
            uri_pattern=uri_filter,
            model_name=model_name,
            task_type=task_type,
            page=page,
            limit=limit,
        )
        records, total = self._repo.find_all(filters)
        return ListResult(
            records=[EmbeddingRead.model_validate(r) for r in records],
            total=total,
            page=filters.effective_page,
            limit=filters.effective_limit,
        )

    def search(
        self,
        query: str,
        model_name: str | None = None,
        *,
        metric: SimilarityMetric | str = SimilarityMetric.COSINE,
        limit: int = 10,
        threshold: float | None = None,
    ) -> SearchResult:
        """Embed *query* and rank the stored vectors of the same model against it."""
        payload = _validate(
            SearchQuery,
            {
                "query": query,
                "model_name": model_name,
                "metric": metric,
                "limit": limit,
                "threshold": threshold,
            },
        )
        provider = self._registry.get_current_provider()
        model = provider.resolve_model(payload.model_name)
        key = search_key(model, payload.query, payload.limit, payload.metric.value, payload.threshold)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        response = provider.generate_embedding(payload.query, model)
        candidates = self._repo.list_by_model(response.model)
        hits = search_vectors(
            response.embedding,
            candidates,
            metric=payload.metric,
            limit=payload.limit,
            threshold=payload.threshold,
        )
        result = SearchResult(
            query=payload.query,
            model_name=response.model,
            metric=payload.metric,
            threshold=payload.threshold,
            total_results=len(hits),
            results=[
                SearchHit(record=EmbeddingRead.model_validate(h.record), score=h.score)
                for h in hits
            ],
        )
        self._cache.set(key, result)
        return result
