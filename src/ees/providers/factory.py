"""Provider construction and the registry of named provider configurations."""
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from ees.domain.exceptions import NotFoundError, ProviderConnectionError
from ees.infra.cache.embedding_cache import EmbeddingCache, provider_status_key
from ees.providers.base import EmbeddingProvider, ProviderConfig, ProviderType
from ees.providers.ollama import DEFAULT_BASE_URL, DEFAULT_MODEL, OllamaProvider
from ees.providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

_IMPLEMENTATIONS: Mapping[ProviderType, type[EmbeddingProvider]] = {
    ProviderType.LOCAL: OllamaProvider,
    ProviderType.REMOTE_COMPATIBLE: OpenAICompatibleProvider,
}


def create_provider(
    config: ProviderConfig,
    *,
    cache: EmbeddingCache | None = None,
    client: httpx.Client | None = None,
) -> EmbeddingProvider:
    """Instantiate the provider implementation for ``config.type``."""
    try:
        impl = _IMPLEMENTATIONS[ProviderType(config.type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported provider type: {config.type!r}") from None
    return impl(config, cache=cache, client=client)


@dataclass(frozen=True, slots=True)
class ProviderInfo:
    name: str
    type: ProviderType
    base_url: str
    default_model: str | None
    active: bool


class ProviderRegistry:
    """Named provider configs with exactly one active provider.

    Providers are built lazily on first use and reused afterwards.
    """

    def __init__(self, *, cache: EmbeddingCache | None = None) -> None:
        self._cache = cache
        self._configs: dict[str, ProviderConfig] = {}
        self._instances: dict[str, EmbeddingProvider] = {}
        self._active: str | None = None
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        config: ProviderConfig | None = None,
        *,
        provider: EmbeddingProvider | None = None,
        activate: bool = False,
    ) -> None:
        """Add a named config, or a ready-made provider instance."""
        if config is None and provider is None:
            raise ValueError("register() needs a config or a provider")
        with self._lock:
            if name in self._instances:
                self._instances.pop(name).close()
            self._configs[name] = config if config is not None else provider.config
            if provider is not None:
                self._instances[name] = provider
            if activate or self._active is None:
                self._active = name

    def get(self, name: str) -> EmbeddingProvider:
        with self._lock:
            if name not in self._configs:
                raise NotFoundError(f"Provider {name!r} is not registered")
            if name not in self._instances:
                self._instances[name] = create_provider(self._configs[name], cache=self._cache)
            return self._instances[name]

    @property
    def active_name(self) -> str:
        if self._active is None:
            raise NotFoundError("No provider registered")
        return self._active

    def get_current_provider(self) -> EmbeddingProvider:
        return self.get(self.active_name)

    def set_active(self, name: str) -> None:
        """Activate *name* without a reachability check (startup wiring)."""
        with self._lock:
            if name not in self._configs:
                raise NotFoundError(f"Provider {name!r} is not registered")
            self._active = name

    def names(self) -> list[str]:
        return list(self._configs)

    def list_providers(self) -> list[ProviderInfo]:
        return [
            ProviderInfo(
                name=name,
                type=ProviderType(cfg.type),
                base_url=cfg.base_url,
                default_model=cfg.default_model,
                active=name == self._active,
            )
            for name, cfg in self._configs.items()
        ]

    def switch_provider(self, name: str) -> EmbeddingProvider:
        """Make *name* active once it proves reachable.

        Raises ProviderConnectionError (and keeps the current provider) if
        the target does not answer its model listing.
        """
        provider = self.get(name)
        if not self.check_status(name, use_cache=False):
            raise ProviderConnectionError(
                f"Provider {name!r} is not reachable at {provider.config.base_url}",
                provider=name,
            )
        with self._lock:
            self._active = name
        logger.info("Switched active provider to %s", name)
        return provider

    def check_status(self, name: str, *, use_cache: bool = True) -> bool:
        """Reachability of *name*, cached for the provider-status TTL."""
        key = provider_status_key(name)
        if use_cache and self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
        healthy = self.get(name).check_status()
        if self._cache is not None:
            self._cache.set(key, healthy)
        return healthy

    def close(self) -> None:
        with self._lock:
            for provider in self._instances.values():
                provider.close()
            self._instances.clear()


def build_registry(settings, *, cache: EmbeddingCache | None = None) -> ProviderRegistry:
    """Registry holding the providers configured through ``EES_*`` settings."""
    registry = ProviderRegistry(cache=cache)
    registry.register(
        "ollama",
        ProviderConfig(
            type=ProviderType.LOCAL,
            base_url=settings.OLLAMA_BASE_URL or DEFAULT_BASE_URL,
            default_model=settings.OLLAMA_DEFAULT_MODEL or DEFAULT_MODEL,
            timeout=settings.PROVIDER_TIMEOUT,
            status_timeout=settings.STATUS_TIMEOUT,
        ),
    )
    if settings.OPENAI_COMPATIBLE_BASE_URL:
        api_key = settings.OPENAI_COMPATIBLE_API_KEY
        registry.register(
            "openai-compatible",
            ProviderConfig(
                type=ProviderType.REMOTE_COMPATIBLE,
                base_url=settings.OPENAI_COMPATIBLE_BASE_URL,
                api_key=api_key.get_secret_value() if api_key else None,
                default_model=settings.OPENAI_COMPATIBLE_DEFAULT_MODEL,
                timeout=settings.PROVIDER_TIMEOUT,
                status_timeout=settings.STATUS_TIMEOUT,
            ),
        )
    if settings.DEFAULT_PROVIDER in registry.names():
        registry.set_active(settings.DEFAULT_PROVIDER)
    else:
        logger.warning(
            "EES_DEFAULT_PROVIDER=%s is not configured; using %s",
            settings.DEFAULT_PROVIDER,
            registry.active_name,
        )
    return registry
