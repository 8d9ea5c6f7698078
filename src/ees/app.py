"""Engine composition root.

Owns the process-lifetime collaborators (cache and provider registry) and
hands out services bound to a caller's UnitOfWork. Construct one per process
and close it on shutdown::

    with EmbeddingEngine.from_settings() as app, UnitOfWork() as uow:
        app.embeddings(uow).create("doc://1", "hello world")
"""
from __future__ import annotations

from ees.config import Settings, settings as default_settings
from ees.infra.cache.embedding_cache import EmbeddingCache
from ees.infra.db.uow import UnitOfWork
from ees.logging import logger
from ees.providers.factory import ProviderRegistry, build_registry
from ees.services.embedding_service import EmbeddingService
from ees.services.model_service import ModelService


class EmbeddingEngine:
    def __init__(self, registry: ProviderRegistry, cache: EmbeddingCache) -> None:
        self.registry = registry
        self.cache = cache

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EmbeddingEngine":
        settings = settings or default_settings
        cache = EmbeddingCache.from_settings(settings)
        registry = build_registry(settings, cache=cache)
        logger.info(
            "Engine ready: provider=%s cache=%s",
            registry.active_name,
            "on" if cache.enabled else "off",
        )
        return cls(registry, cache)

    def embeddings(self, uow: UnitOfWork) -> EmbeddingService:
        return EmbeddingService(uow, self.registry, self.cache)

    def models(self, uow: UnitOfWork) -> ModelService:
        return ModelService(uow, self.registry, self.cache)

    def close(self) -> None:
        self.cache.close()
        self.registry.close()

    def __enter__(self) -> "EmbeddingEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
