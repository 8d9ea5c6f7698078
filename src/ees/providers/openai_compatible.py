"""Remote provider for any server speaking the OpenAI embeddings API.

Covers LM Studio, LocalAI, vLLM and hosted OpenAI-style endpoints. Requests
carry a bearer token; servers that ignore auth get the literal
``not-needed``.
"""
from __future__ import annotations

import httpx

from ees.domain.exceptions import ModelError
from ees.infra.cache.embedding_cache import EmbeddingCache
from ees.providers.base import (
    EmbeddingProvider,
    EmbeddingResponse,
    ModelDescriptor,
    ProviderConfig,
    describe,
)


class OpenAICompatibleProvider(EmbeddingProvider):
    name = "openai-compatible"

    def __init__(
        self,
        config: ProviderConfig,
        *,
        cache: EmbeddingCache | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(config, cache=cache, client=client)
        self._client.headers["Authorization"] = f"Bearer {config.api_key or 'not-needed'}"

    def generate_embedding(
        self, text: str, model_name: str | None = None
    ) -> EmbeddingResponse:
        model = self.resolve_model(model_name)
        body = self._request(
            "POST", "/v1/embeddings", json={"model": model, "input": text}, model_name=model
        )
        try:
            vector = [float(x) for x in body["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ModelError(
                f"Malformed embeddings response for model {model}",
                provider=self.name,
                model_name=model,
            ) from exc
        return EmbeddingResponse(embedding=vector, model=model, provider=self.name)

    def _fetch_models(self, timeout: float) -> list[ModelDescriptor]:
        body = self._request("GET", "/v1/models", timeout=timeout)
        try:
            return [describe(m["id"], self.name) for m in body["data"] or () if m.get("id")]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ModelError(f"Malformed model listing from {self.name}", provider=self.name) from exc

    def _fallback_models(self) -> list[ModelDescriptor]:
        if self.config.default_model:
            return [describe(self.config.default_model, self.name)]
        return []
