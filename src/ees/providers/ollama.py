"""Local provider backed by an Ollama server."""
from __future__ import annotations

import logging

from ees.domain.exceptions import ModelError
from ees.providers.base import (
    EmbeddingProvider,
    EmbeddingResponse,
    ModelDescriptor,
    describe,
    normalize_model_name,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "nomic-embed-text"

FALLBACK_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(name="nomic-embed-text", provider="ollama", dimensions=768, max_tokens=8192),
)


class OllamaProvider(EmbeddingProvider):
    """Talks to ``/api/embed`` and ``/api/tags``.

    Model names are matched loosely (``nomic-embed-text`` finds
    ``nomic-embed-text:v1.5``) because Ollama tags are user-chosen.
    """

    name = "ollama"

    def resolve_model(self, model_name: str | None) -> str:
        return model_name or self.config.default_model or DEFAULT_MODEL

    def generate_embedding(
        self, text: str, model_name: str | None = None
    ) -> EmbeddingResponse:
        model = self.resolve_model(model_name)
        logger.debug("Embedding %d chars with %s", len(text), model)
        body = self._request(
            "POST", "/api/embed", json={"model": model, "input": [text]}, model_name=model
        )
        try:
            vector = [float(x) for x in body["embeddings"][0]]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ModelError(
                f"Ollama returned no embedding for model {model}",
                provider=self.name,
                model_name=model,
            ) from exc
        return EmbeddingResponse(embedding=vector, model=model, provider=self.name)

    def _fetch_models(self, timeout: float) -> list[ModelDescriptor]:
        body = self._request("GET", "/api/tags", timeout=timeout)
        try:
            return [describe(m["name"], self.name) for m in body["models"] or () if m.get("name")]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ModelError("Malformed model listing from Ollama", provider=self.name) from exc

    def _fallback_models(self) -> list[ModelDescriptor]:
        return list(FALLBACK_MODELS)

    def _matches(self, candidate: str, wanted: str) -> bool:
        wanted = normalize_model_name(wanted)
        return candidate == wanted or wanted in candidate or candidate in wanted
