"""Embedding provider implementations and the factory that selects them."""

from ees.providers.base import (
    EmbeddingProvider,
    EmbeddingResponse,
    ModelDescriptor,
    ProviderConfig,
    ProviderType,
    normalize_model_name,
)
from ees.providers.factory import ProviderInfo, ProviderRegistry, build_registry, create_provider
from ees.providers.ollama import OllamaProvider
from ees.providers.openai_compatible import OpenAICompatibleProvider

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResponse",
    "ModelDescriptor",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "ProviderConfig",
    "ProviderInfo",
    "ProviderRegistry",
    "ProviderType",
    "build_registry",
    "create_provider",
    "normalize_model_name",
]
