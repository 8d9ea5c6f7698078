"""EmbeddingService tests: store semantics, cache coherence, search."""
from __future__ import annotations

import threading

import pydantic
import pytest

from conftest import FakeProvider, hash_vector
from ees.domain.exceptions import DimensionMismatchError, NotFoundError, ValidationError
from ees.infra.cache import EmbeddingCache, embedding_key
from ees.infra.db.repositories.embedding_repository import EmbeddingRepository
from ees.infra.db.uow import UnitOfWork
from ees.providers import ProviderRegistry
from ees.schemas.embeddings import EmbeddingCreate
from ees.search.vector_search import SimilarityMetric
from ees.services.embedding_service import EmbeddingService


@pytest.fixture
def uow(use_test_engine):
    with UnitOfWork() as u:
        yield u


@pytest.fixture
def service(uow, registry, cache):
    return EmbeddingService(uow, registry, cache)


# ---------------------------------------------------------------
# Create / upsert
# ---------------------------------------------------------------


def test_create_stores_provider_vector(service):
    created = service.create("doc://1", "hello world")
    assert created.model_name == "model-a"

    read = service.get_by_id(created.id)
    assert read.uri == "doc://1"
    assert read.text == "hello world"
    assert list(read.vector) == hash_vector("hello world", 3)


def test_create_same_uri_and_model_replaces(service):
    first = service.create("doc://1", "old text")
    second = service.create("doc://1", "new text")

    assert second.id == first.id
    assert service.get_by_id(first.id).text == "new text"
    assert service.list_embeddings().total == 1


def test_same_uri_under_two_models_coexists(service):
    service.create("doc://1", "text", "model-a")
    service.create("doc://1", "text", "model-b")
    assert service.get_by_uri("doc://1", "model-a") is not None
    assert service.get_by_uri("doc://1", "model-b") is not None
    assert service.list_embeddings().total == 2


@pytest.mark.parametrize(
    "uri, text",
    [
        ("", "text"),
        ("   ", "text"),
        ("doc://1", ""),
        ("doc://1", "  \n"),
        ("x" * 2049, "text"),
    ],
)
def test_create_rejects_invalid_input(service, fake_provider, uri, text):
    with pytest.raises(ValidationError):
        service.create(uri, text)
    assert fake_provider.calls == []


def test_create_rejects_unknown_task_type(service):
    with pytest.raises(ValidationError, match="Unknown task type"):
        service.create("doc://1", "text", task_type="summarize")


def test_task_prefix_applied_for_embeddinggemma(use_test_engine, cache):
    provider = FakeProvider(default_model="embeddinggemma")
    registry = ProviderRegistry(cache=cache)
    registry.register("fake", provider=provider)
    with UnitOfWork() as uow:
        svc = EmbeddingService(uow, registry, cache)
        created = svc.create(
            "doc://1", "body", task_type="retrieval_document", title="Guide"
        )
        read = svc.get_by_id(created.id)

    assert provider.calls == [("title: Guide | text: body", "embeddinggemma")]
    assert read.text == "body"
    assert read.task_type == "retrieval_document"
    registry.close()


def test_create_keeps_converted_content(service):
    created = service.create(
        "file://report.pdf",
        "extracted text",
        original_content="%PDF-1.7",
        converted_format="pdf",
    )
    read = service.get_by_id(created.id)
    assert read.original_content == "%PDF-1.7"
    assert read.converted_format == "pdf"


# ---------------------------------------------------------------
# Batch
# ---------------------------------------------------------------


def test_batch_isolates_failures(service, fake_provider):
    fake_provider.fail_on = {"broken"}
    result = service.create_batch(
        [
            {"uri": "doc://1", "text": "fine"},
            EmbeddingCreate(uri="doc://2", text="broken"),
            {"uri": "", "text": "no uri"},
            {"uri": "doc://4", "text": "also fine"},
        ]
    )

    assert (result.total, result.successful, result.failed) == (4, 2, 2)
    assert [r.status for r in result.results] == ["success", "error", "error", "success"]
    assert "cannot embed" in result.results[1].error
    assert service.list_embeddings().total == 2


# ---------------------------------------------------------------
# Read / cache coherence
# ---------------------------------------------------------------


def test_get_by_uri_is_cached(service, cache):
    service.create("doc://1", "text")
    first = service.get_by_uri("doc://1")
    assert cache.get(embedding_key("model-a", "doc://1")) == first


def test_empty_injected_cache_is_used(uow, registry):
    cache = EmbeddingCache(max_size=10)
    svc = EmbeddingService(uow, registry, cache)
    svc.create("doc://1", "text")

    read = svc.get_by_uri("doc://1")
    assert len(cache) == 1
    assert cache.get(embedding_key("model-a", "doc://1")) == read


def test_cached_reads_are_immutable(service):
    service.create("doc://1", "text")
    read = service.get_by_uri("doc://1")

    assert isinstance(read.vector, tuple)
    with pytest.raises(pydantic.ValidationError):
        read.text = "tampered"
    assert service.get_by_uri("doc://1").text == "text"


def test_get_by_uri_missing_returns_none(service):
    assert service.get_by_uri("doc://missing") is None


def test_create_invalidates_cached_read(service):
    service.create("doc://1", "before")
    assert service.get_by_uri("doc://1").text == "before"

    service.create("doc://1", "after")
    assert service.get_by_uri("doc://1").text == "after"


def test_update_text_regenerates_vector_and_invalidates(service, fake_provider):
    created = service.create("doc://1", "before")
    service.get_by_uri("doc://1")

    updated = service.update(created.id, text="after")
    assert list(updated.vector) == hash_vector("after", 3)
    assert fake_provider.calls[-1] == ("after", "model-a")
    assert service.get_by_uri("doc://1").text == "after"


def test_update_task_type_only_keeps_vector(service, fake_provider):
    created = service.create("doc://1", "text")
    calls_before = len(fake_provider.calls)

    updated = service.update(created.id, task_type="clustering")
    assert updated.task_type == "clustering"
    assert list(updated.vector) == hash_vector("text", 3)
    assert len(fake_provider.calls) == calls_before


def test_update_missing_raises_not_found(service):
    with pytest.raises(NotFoundError):
        service.update(404, text="x")


def test_get_by_id_missing_raises_not_found(service):
    with pytest.raises(NotFoundError):
        service.get_by_id(404)


def test_delete_invalidates_cache(service):
    created = service.create("doc://1", "text")
    service.get_by_uri("doc://1")

    assert service.delete(created.id) is True
    assert service.get_by_uri("doc://1") is None
    assert service.delete(created.id) is False


def test_delete_all_clears_store_and_cache(service, cache):
    service.create("doc://1", "a")
    service.create("doc://2", "b")
    service.get_by_uri("doc://1")

    assert service.delete_all() == 2
    assert service.list_embeddings().total == 0
    assert cache.get(embedding_key("model-a", "doc://1")) is None


# ---------------------------------------------------------------
# Listing
# ---------------------------------------------------------------


def test_list_embeddings_pages(service):
    for i in range(25):
        service.create(f"doc://{i}", f"text {i}")

    page = service.list_embeddings(page=3, limit=10)
    assert page.total == 25
    assert len(page.records) == 5
    assert page.total_pages == 3
    assert page.has_prev is True
    assert page.has_next is False


def test_list_embeddings_filters_by_uri_and_model(service):
    service.create("doc://a", "x")
    service.create("web://b", "y")
    service.create("doc://c", "z", "model-b")

    assert service.list_embeddings(uri_filter="doc://").total == 2
    assert [r.uri for r in service.list_embeddings(model_name="model-b").records] == ["doc://c"]


# ---------------------------------------------------------------
# Search
# ---------------------------------------------------------------


@pytest.fixture
def seeded(service, fake_provider):
    fake_provider.vectors.update(
        {
            "cats": [1.0, 0.0, 0.0],
            "kittens": [0.9, 0.1, 0.0],
            "dogs": [0.0, 1.0, 0.0],
            "anti-cats": [-1.0, 0.0, 0.0],
            "query about cats": [1.0, 0.0, 0.0],
        }
    )
    for text in ("cats", "kittens", "dogs", "anti-cats"):
        service.create(f"doc://{text}", text)
    return service


def test_search_ranks_by_cosine(seeded):
    result = seeded.search("query about cats")
    assert [h.record.text for h in result.results] == ["cats", "kittens", "dogs", "anti-cats"]
    assert result.total_results == 4
    assert result.results[0].score == pytest.approx(1.0)
    assert result.metric == SimilarityMetric.COSINE
    assert result.model_name == "model-a"


def test_search_threshold_and_limit(seeded):
    result = seeded.search("query about cats", threshold=0.5)
    assert [h.record.text for h in result.results] == ["cats", "kittens"]

    result = seeded.search("query about cats", limit=1)
    assert [h.record.text for h in result.results] == ["cats"]


def test_search_euclidean(seeded):
    result = seeded.search("query about cats", metric="euclidean", limit=2)
    assert [h.record.text for h in result.results] == ["cats", "kittens"]
    assert result.results[0].score == pytest.approx(1.0)


def test_search_only_scans_requested_model(seeded):
    assert seeded.search("query about cats", "model-b").total_results == 0


def test_search_results_are_cached(seeded, fake_provider):
    seeded.search("query about cats")
    calls = len(fake_provider.calls)
    seeded.search("  Query about CATS ")
    assert len(fake_provider.calls) == calls


def test_search_with_threshold_uses_its_own_cache_entry(seeded, fake_provider):
    unfiltered = seeded.search("query about cats")
    filtered = seeded.search("query about cats", threshold=0.5)
    assert unfiltered.total_results == 4
    assert filtered.total_results == 2


def test_search_dimension_mismatch(seeded, uow):
    EmbeddingRepository(uow.session).create(
        uri="doc://odd", model_name="model-a", text="odd", vector=[1.0, 0.0, 0.0, 0.0]
    )
    uow.commit()
    with pytest.raises(DimensionMismatchError):
        seeded.search("query about cats", threshold=0.9)


@pytest.mark.parametrize("limit", [0, 101])
def test_search_rejects_out_of_range_limit(service, limit):
    with pytest.raises(ValidationError):
        service.search("q", limit=limit)


def test_search_rejects_blank_query(service):
    with pytest.raises(ValidationError):
        service.search("   ")


def test_search_results_are_immutable(seeded):
    result = seeded.search("query about cats")
    assert isinstance(result.results, tuple)
    with pytest.raises(pydantic.ValidationError):
        result.total_results = 0
    with pytest.raises(pydantic.ValidationError):
        result.results[0].score = 0.0


# ---------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------


def test_concurrent_creates_of_same_pair_leave_one_row(use_test_engine, registry, cache):
    workers = 8
    barrier = threading.Barrier(workers)
    ids: list[int] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker(i: int) -> None:
        try:
            barrier.wait()
            with UnitOfWork() as uow:
                created = EmbeddingService(uow, registry, cache).create("doc://same", f"text {i}")
            with lock:
                ids.append(created.id)
        except Exception as exc:  # collected and asserted below
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(ids) == workers
    assert len(set(ids)) == 1
    with UnitOfWork() as uow:
        assert EmbeddingRepository(uow.session).usage_by_model() == {"model-a": 1}
        stored = EmbeddingService(uow, registry, cache).get_by_uri("doc://same")
    assert stored.text in {f"text {i}" for i in range(workers)}
