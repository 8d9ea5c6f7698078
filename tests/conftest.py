"""Shared test fixtures.

  use_test_engine  redirects the UoW and infra layer to a temp-file SQLite DB.
  cache            fresh EmbeddingCache per test, closed on teardown.
  fake_provider    deterministic in-process EmbeddingProvider (no network).
  registry         ProviderRegistry with ``fake_provider`` active.
"""
from __future__ import annotations

import hashlib
import os
import threading

import httpx
import pytest
from sqlmodel import SQLModel, create_engine

from ees.domain.exceptions import ModelError
from ees.infra.cache.embedding_cache import EmbeddingCache
from ees.providers.base import (
    EmbeddingProvider,
    EmbeddingResponse,
    ModelDescriptor,
    ProviderConfig,
    ProviderType,
)
from ees.providers.factory import ProviderRegistry


def pytest_configure(config):
    """Keep the import-time engine off the developer's real data directory."""
    os.environ.setdefault("EES_DATABASE_URL", "sqlite://")
    os.environ.setdefault("EES_LOG_LEVEL", "WARNING")


@pytest.fixture
def use_test_engine(tmp_path, monkeypatch):
    """Monkeypatch infra/db engine references to an isolated temp-file SQLite DB."""
    db_path = tmp_path / "test_ees.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}", echo=False, connect_args={"check_same_thread": False}
    )

    import ees.models  # noqa: F401  register all ORM mappers
    from ees.infra.db.engine import configure_sqlite

    configure_sqlite(test_engine)
    SQLModel.metadata.create_all(test_engine)

    monkeypatch.setattr("ees.infra.db.engine.engine", test_engine)
    monkeypatch.setattr("ees.infra.db.uow.engine", test_engine)

    yield test_engine

    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


# ---------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------


def hash_vector(text: str, dims: int) -> list[float]:
    """Deterministic pseudo-embedding: same text, same vector."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i % len(digest)] + 1) / 256.0 for i in range(dims)]


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("fake provider has no network", request=request)


class FakeProvider(EmbeddingProvider):
    """In-memory provider; ``fail_on`` texts raise ModelError."""

    def __init__(
        self,
        name: str = "fake",
        models: tuple[ModelDescriptor, ...] | None = None,
        *,
        default_model: str = "model-a",
        fail_on: set[str] | None = None,
        vectors: dict[str, list[float]] | None = None,
    ) -> None:
        super().__init__(
            ProviderConfig(
                type=ProviderType.LOCAL,
                base_url="http://fake.test",
                default_model=default_model,
            ),
            client=httpx.Client(transport=httpx.MockTransport(_unreachable)),
        )
        self.name = name
        self.models = list(
            models
            or (
                ModelDescriptor(name="model-a", provider=name, dimensions=3),
                ModelDescriptor(name="model-b", provider=name, dimensions=3),
                ModelDescriptor(name="model-wide", provider=name, dimensions=5),
            )
        )
        self.fail_on = set(fail_on or ())
        self.vectors = dict(vectors or {})
        self.calls: list[tuple[str, str]] = []
        self._calls_lock = threading.Lock()

    def _dims(self, model: str) -> int:
        for m in self.models:
            if m.name == model:
                return m.dimensions
        return 3

    def generate_embedding(self, text: str, model_name: str | None = None) -> EmbeddingResponse:
        model = self.resolve_model(model_name)
        with self._calls_lock:
            self.calls.append((text, model))
        if text in self.fail_on:
            raise ModelError(f"cannot embed {text!r}", provider=self.name, model_name=model)
        vector = self.vectors.get(text) or hash_vector(text, self._dims(model))
        return EmbeddingResponse(embedding=list(vector), model=model, provider=self.name)

    def _fetch_models(self, timeout: float) -> list[ModelDescriptor]:
        return list(self.models)

    def _fallback_models(self) -> list[ModelDescriptor]:
        return []


@pytest.fixture
def cache():
    c = EmbeddingCache(max_size=100)
    yield c
    c.close()


@pytest.fixture
def fake_provider():
    p = FakeProvider()
    yield p
    p.close()


@pytest.fixture
def registry(fake_provider, cache):
    r = ProviderRegistry(cache=cache)
    r.register("fake", provider=fake_provider)
    yield r
    r.close()
