"""Model management: discovery, compatibility scoring and vector migration."""
from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ees.config import settings
from ees.domain.exceptions import (
    EESError,
    IncompatibleModelsError,
    MigrationError,
    ModelNotFoundError,
    ValidationError,
)
from ees.infra.cache.embedding_cache import EmbeddingCache, embedding_key
from ees.infra.db.repositories.embedding_repository import EmbeddingRepository
from ees.infra.db.uow import UnitOfWork
from ees.models.embedding import Embedding
from ees.models.task_type import TaskType, format_text_for_task
from ees.providers.base import EmbeddingProvider, EmbeddingResponse, ModelDescriptor
from ees.providers.factory import ProviderRegistry
from ees.schemas.migration import (
    MigrationDetail,
    MigrationOptions,
    MigrationResult,
    MigrationStatus,
)
from ees.schemas.models import CompatibilityResult, ModelInfoRead, UsageStats

logger = logging.getLogger(__name__)

PROVIDER_MISMATCH_PENALTY = 0.1
_TASK_VALUES = frozenset(t.value for t in TaskType)


@dataclass(frozen=True, slots=True)
class _Located:
    """A model descriptor plus the registry entry that serves it."""

    descriptor: ModelDescriptor
    registry_name: str


@dataclass(frozen=True, slots=True)
class _Outcome:
    record: Embedding
    response: EmbeddingResponse | None = None
    error: str | None = None


def compatibility_score(source: ModelDescriptor, target: ModelDescriptor) -> CompatibilityResult:
    """Score how interchangeable two models' vectors are, in [0, 1].

    Different dimensions are never compatible. Otherwise start from 1.0,
    subtract a flat penalty for crossing providers, then scale by the token
    window ratio and (when both declare them) the language overlap.
    """
    if source.dimensions != target.dimensions:
        return CompatibilityResult(
            compatible=False,
            reason=f"Different vector dimensions: {source.dimensions} vs {target.dimensions}",
            similarity_score=0.0,
        )

    score = 1.0
    if source.provider != target.provider:
        score -= PROVIDER_MISMATCH_PENALTY

    longest = max(source.max_tokens, target.max_tokens)
    if longest > 0:
        score *= min(source.max_tokens, target.max_tokens) / longest

    if source.languages and target.languages:
        common = set(source.languages) & set(target.languages)
        score *= len(common) / max(len(source.languages), len(target.languages))

    return CompatibilityResult(compatible=True, similarity_score=max(0.0, min(1.0, score)))


def _batches(records: Sequence[Embedding], size: int) -> list[Sequence[Embedding]]:
    return [records[i:i + size] for i in range(0, len(records), size)]


class ModelService:
    def __init__(
        self,
        uow: UnitOfWork,
        registry: ProviderRegistry,
        cache: EmbeddingCache | None = None,
        *,
        max_workers: int | None = None,
    ) -> None:
        self._uow = uow
        self._registry = registry
        self._cache = cache if cache is not None else EmbeddingCache(enabled=False)
        self._max_workers = max_workers or settings.MIGRATION_WORKERS

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _providers(self) -> list[tuple[str, EmbeddingProvider]]:
        # Active provider first so its models win name collisions.
        active = self._registry.active_name
        names = [active] + [n for n in self._registry.names() if n != active]
        return [(n, self._registry.get(n)) for n in names]

    def _locate(self, model_name: str) -> _Located:
        for registry_name, provider in self._providers():
            info = provider.get_model_info(model_name)
            if info is not None:
                return _Located(descriptor=info, registry_name=registry_name)
        raise ModelNotFoundError(f"Model {model_name!r} not found in any provider")

    def list_models(self) -> list[ModelInfoRead]:
        return [
            ModelInfoRead.model_validate(m)
            for _, provider in self._providers()
            for m in provider.list_models()
        ]

    def get_model_info(self, model_name: str) -> ModelInfoRead | None:
        try:
            return ModelInfoRead.model_validate(self._locate(model_name).descriptor)
        except ModelNotFoundError:
            return None

    def get_model_dimensions(self, model_name: str) -> int:
        return self._locate(model_name).descriptor.dimensions

    def is_model_available(self, model_name: str) -> bool:
        return self.get_model_info(model_name) is not None

    def get_usage_stats(self) -> UsageStats:
        by_model = EmbeddingRepository(self._uow.session).usage_by_model()
        return UsageStats(total=sum(by_model.values()), by_model=by_model)

    def validate_compatibility(self, source_model: str, target_model: str) -> CompatibilityResult:
        source = self._locate(source_model).descriptor
        target = self._locate(target_model).descriptor
        return compatibility_score(source, target)

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate(
        self,
        from_model: str,
        to_model: str,
        options: MigrationOptions | None = None,
    ) -> MigrationResult:
        """Re-embed every record stored under *from_model* with *to_model*.

        Batches are committed as they finish, so a crash or an abort keeps
        the work already done; re-running picks up whatever still sits on
        *from_model*. With ``continue_on_error=False`` the first failed item
        raises MigrationError carrying the partial result.
        """
        if from_model == to_model:
            raise ValidationError("Source and target model must differ")
        options = options or MigrationOptions()
        started = time.perf_counter()

        compat = self.validate_compatibility(from_model, to_model)
        if not compat.compatible:
            raise IncompatibleModelsError(
                f"Cannot migrate {from_model} -> {to_model}: {compat.reason}", compat
            )

        provider = self._registry.get(self._locate(to_model).registry_name)
        repo = EmbeddingRepository(self._uow.session)
        records = repo.list_by_model(from_model)
        result = MigrationResult()
        if not records:
            result.duration_ms = (time.perf_counter() - started) * 1000
            return result

        logger.info(
            "Migrating %d embeddings %s -> %s (batch_size=%d)",
            len(records), from_model, to_model, options.batch_size,
        )
        for batch in _batches(records, options.batch_size):
            outcomes = self._regenerate(provider, batch, to_model, options.batch_size)
            touched: list[str] = []
            for outcome in outcomes:
                detail = self._apply(repo, outcome, to_model, options.preserve_original)
                result.details.append(detail)
                result.total_processed += 1
                if detail.status == MigrationStatus.SUCCESS:
                    result.successful += 1
                    touched.append(outcome.record.uri)
                    continue

                result.failed += 1
                if not options.continue_on_error:
                    self._uow.commit()
                    self._invalidate(touched, from_model, to_model)
                    result.duration_ms = (time.perf_counter() - started) * 1000
                    raise MigrationError(
                        f"Migration aborted at embedding {detail.id}: {detail.error}",
                        partial_result=result,
                    )

            self._uow.commit()
            self._invalidate(touched, from_model, to_model)

        result.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Migration %s -> %s done: %d ok, %d failed in %.0f ms",
            from_model, to_model, result.successful, result.failed, result.duration_ms,
        )
        return result

    def _regenerate(
        self,
        provider: EmbeddingProvider,
        batch: Sequence[Embedding],
        model_name: str,
        batch_size: int,
    ) -> list[_Outcome]:
        """Call the provider for every record of *batch* concurrently.

        Outcomes come back in batch order; no store access happens here.
        """

        def embed(record: Embedding) -> _Outcome:
            task = TaskType(record.task_type) if record.task_type in _TASK_VALUES else None
            prompt = format_text_for_task(record.text, task, model_name)
            try:
                return _Outcome(record=record, response=provider.generate_embedding(prompt, model_name))
            except EESError as e:
                return _Outcome(record=record, error=e.message)

        workers = max(1, min(batch_size, self._max_workers, len(batch)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ees-migrate") as pool:
            return list(pool.map(embed, batch))

    def _apply(
        self,
        repo: EmbeddingRepository,
        outcome: _Outcome,
        model_name: str,
        preserve_original: bool,
    ) -> MigrationDetail:
        record = outcome.record
        if outcome.response is None:
            return MigrationDetail(
                id=record.id, uri=record.uri, status=MigrationStatus.ERROR, error=outcome.error
            )

        # A savepoint per item: a failed write rolls back only this record.
        try:
            with self._uow.session.begin_nested():
                if preserve_original:
                    repo.create(
                        uri=record.uri,
                        model_name=model_name,
                        text=record.text,
                        vector=outcome.response.embedding,
                        task_type=record.task_type,
                        original_content=record.original_content,
                        converted_format=record.converted_format,
                    )
                elif repo.find_by_uri(record.uri, model_name) is not None:
                    return MigrationDetail(
                        id=record.id,
                        uri=record.uri,
                        status=MigrationStatus.ERROR,
                        error=f"{record.uri} already has an embedding for {model_name}",
                    )
                else:
                    repo.update(
                        record.id, model_name=model_name, vector=outcome.response.embedding
                    )
        except EESError as e:
            return MigrationDetail(
                id=record.id, uri=record.uri, status=MigrationStatus.ERROR, error=e.message
            )
        return MigrationDetail(id=record.id, uri=record.uri, status=MigrationStatus.SUCCESS)

    def _invalidate(self, uris: Sequence[str], from_model: str, to_model: str) -> None:
        for uri in uris:
            self._cache.delete(embedding_key(from_model, uri))
            self._cache.delete(embedding_key(to_model, uri))
