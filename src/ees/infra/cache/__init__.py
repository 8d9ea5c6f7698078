"""Process-local cache for embedding lookups, search results and model lists."""

from ees.infra.cache.embedding_cache import (
    CacheNamespace,
    CacheTTLs,
    EmbeddingCache,
    embedding_key,
    models_key,
    provider_status_key,
    query_hash,
    search_key,
)

__all__ = [
    "CacheNamespace",
    "CacheTTLs",
    "EmbeddingCache",
    "embedding_key",
    "models_key",
    "provider_status_key",
    "query_hash",
    "search_key",
]
