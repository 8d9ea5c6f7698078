"""Embedding provider contract and the value types it exchanges."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from ees.domain.exceptions import ModelError, ProviderError
from ees.infra.cache.embedding_cache import EmbeddingCache, models_key
from ees.providers.errors import raise_for_status, translate_transport_error

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 768
DEFAULT_MAX_TOKENS = 8192

# Vector sizes of common embedding models; anything else reports the default.
KNOWN_DIMENSIONS: Mapping[str, int] = {
    "nomic-embed-text": 768,
    "embeddinggemma": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

_LATEST_TAG = re.compile(r":latest$")
_VERSION_TAG = re.compile(r":[\w\-.]+$")


def normalize_model_name(name: str) -> str:
    """``nomic-embed-text:latest`` / ``nomic-embed-text:v1.5`` -> ``nomic-embed-text``."""
    return _VERSION_TAG.sub("", _LATEST_TAG.sub("", name))


class ProviderType(str, Enum):
    LOCAL = "local"
    REMOTE_COMPATIBLE = "remote-compatible"


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    type: ProviderType
    base_url: str
    api_key: str | None = None
    default_model: str | None = None
    timeout: float = 30.0
    status_timeout: float = 5.0


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """One model offered by a provider. ``dimensions`` is the vector length."""

    name: str
    provider: str
    dimensions: int = DEFAULT_DIMENSIONS
    max_tokens: int = DEFAULT_MAX_TOKENS
    price_per_token: float = 0.0
    available: bool = True
    languages: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class EmbeddingResponse:
    embedding: list[float]
    model: str
    provider: str

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


def describe(name: str, provider: str) -> ModelDescriptor:
    base = normalize_model_name(name)
    return ModelDescriptor(
        name=base,
        provider=provider,
        dimensions=KNOWN_DIMENSIONS.get(base, DEFAULT_DIMENSIONS),
    )


class EmbeddingProvider(ABC):
    """Uniform interface over embedding backends.

    Subclasses implement the two network calls (:meth:`generate_embedding`
    and :meth:`_fetch_models`); listing, lookup and status checks are shared.
    """

    name: str = "provider"

    def __init__(
        self,
        config: ProviderConfig,
        *,
        cache: EmbeddingCache | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self._cache = cache
        self._client = client or httpx.Client(
            base_url=config.base_url, timeout=config.timeout
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def generate_embedding(
        self, text: str, model_name: str | None = None
    ) -> EmbeddingResponse:
        """Embed *text* with *model_name* (or the configured default)."""

    @abstractmethod
    def _fetch_models(self, timeout: float) -> list[ModelDescriptor]:
        """Query the backend's model listing; raise ProviderError on failure."""

    @abstractmethod
    def _fallback_models(self) -> list[ModelDescriptor]:
        """Models to report when the listing call fails."""

    def _matches(self, candidate: str, wanted: str) -> bool:
        return candidate == normalize_model_name(wanted)

    # ------------------------------------------------------------------
    # Shared behaviour
    # ------------------------------------------------------------------

    def list_models(self) -> list[ModelDescriptor]:
        """Models offered by the backend; never raises.

        A successful listing is cached for the models TTL. If the backend is
        unreachable the static fallback list is returned (and not cached).
        """
        key = models_key(self.name)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return list(cached)
        try:
            models = self._fetch_models(self.config.status_timeout)
        except ProviderError as e:
            logger.warning("Model listing failed for %s, using fallback: %s", self.name, e)
            return self._fallback_models()
        if self._cache is not None:
            self._cache.set(key, tuple(models))
        return models

    def is_model_available(self, name: str) -> bool:
        return self.get_model_info(name) is not None

    def get_model_info(self, name: str) -> ModelDescriptor | None:
        for model in self.list_models():
            if self._matches(model.name, name):
                return model
        return None

    def check_status(self) -> bool:
        """True if the listing endpoint answers; bypasses the cache and fallback."""
        try:
            self._fetch_models(self.config.status_timeout)
        except ProviderError as e:
            logger.info("Provider %s unavailable: %s", self.name, e)
            return False
        return True

    def resolve_model(self, model_name: str | None) -> str:
        resolved = model_name or self.config.default_model
        if not resolved:
            raise ModelError(
                "No model specified and no default model configured",
                provider=self.name,
            )
        return resolved

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        model_name: str | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise translate_transport_error(
                exc, provider=self.name, base_url=self.config.base_url, model_name=model_name
            ) from exc
        raise_for_status(resp, provider=self.name, model_name=model_name)
        try:
            return resp.json()
        except ValueError as exc:
            raise ModelError(
                f"{self.name} returned a non-JSON body from {path}",
                provider=self.name,
                status_code=resp.status_code,
                model_name=model_name,
            ) from exc
