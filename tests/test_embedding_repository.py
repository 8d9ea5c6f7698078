"""Repository tests against a temp-file SQLite database."""
from __future__ import annotations

import pytest
from sqlmodel import Session

from ees.domain.exceptions import NotFoundError, StoreError
from ees.infra.db.repositories.embedding_repository import (
    EmbeddingFilters,
    EmbeddingRepository,
)
from ees.models.embedding import Embedding


@pytest.fixture
def session(use_test_engine):
    with Session(use_test_engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def repo(session):
    return EmbeddingRepository(session)


def _seed(repo: EmbeddingRepository, n: int, model: str = "model-a") -> list[Embedding]:
    return [
        repo.create(uri=f"doc://{i}", model_name=model, text=f"text {i}", vector=[float(i), 1.0])
        for i in range(n)
    ]


def test_create_stores_exact_vector(repo, session):
    record = repo.create(uri="doc://1", model_name="model-a", text="hello", vector=[0.1, 0.2, 0.3])
    session.commit()

    loaded = repo.get_by_id(record.id)
    assert loaded.vector == [0.1, 0.2, 0.3]
    assert loaded.dimensions == 3


def test_create_same_pair_overwrites_in_place(repo, session):
    first = repo.create(
        uri="doc://1", model_name="model-a", text="old", vector=[1.0], task_type="clustering"
    )
    second = repo.create(uri="doc://1", model_name="model-a", text="new", vector=[2.0])
    session.commit()

    assert second.id == first.id
    assert second.text == "new"
    assert second.vector == [2.0]
    assert second.task_type == "clustering"
    assert repo.usage_by_model() == {"model-a": 1}


def test_same_uri_different_models_are_separate_rows(repo):
    repo.create(uri="doc://1", model_name="model-a", text="t", vector=[1.0])
    repo.create(uri="doc://1", model_name="model-b", text="t", vector=[1.0])
    assert repo.usage_by_model() == {"model-a": 1, "model-b": 1}
    assert repo.find_by_uri("doc://1", "model-b").model_name == "model-b"
    assert repo.find_by_uri("doc://1", "model-c") is None


def test_update_onto_taken_pair_raises_store_error(repo, session):
    repo.create(uri="doc://1", model_name="model-b", text="t", vector=[1.0])
    other = repo.create(uri="doc://1", model_name="model-a", text="t", vector=[1.0])
    with pytest.raises(StoreError, match="update embedding"):
        repo.update(other.id, model_name="model-b")
    session.rollback()


def test_find_all_paginates_and_counts(repo):
    _seed(repo, 25)
    records, total = repo.find_all(EmbeddingFilters(page=3, limit=10))
    assert total == 25
    assert [r.uri for r in records] == [f"doc://{i}" for i in range(20, 25)]


def test_find_all_clamps_limit(repo):
    _seed(repo, 3)
    filters = EmbeddingFilters(page=0, limit=500)
    assert filters.effective_page == 1
    assert filters.effective_limit == 100
    records, _ = repo.find_all(filters)
    assert len(records) == 3


def test_find_all_filters(repo):
    _seed(repo, 3)
    repo.create(uri="web://x", model_name="model-b", text="t", vector=[1.0], task_type="clustering")

    records, total = repo.find_all(EmbeddingFilters(uri_pattern="doc://"))
    assert total == 3
    records, total = repo.find_all(EmbeddingFilters(model_name="model-b"))
    assert [r.uri for r in records] == ["web://x"]
    records, total = repo.find_all(EmbeddingFilters(task_type="clustering"))
    assert total == 1


def test_update_changes_allowed_fields(repo):
    record = repo.create(uri="doc://1", model_name="model-a", text="t", vector=[1.0])
    updated = repo.update(record.id, model_name="model-b", vector=[5.0, 6.0])
    assert updated.model_name == "model-b"
    assert updated.vector == [5.0, 6.0]


def test_update_rejects_unknown_field(repo):
    record = repo.create(uri="doc://1", model_name="model-a", text="t", vector=[1.0])
    with pytest.raises(ValueError, match="uri"):
        repo.update(record.id, uri="doc://2")


def test_update_missing_record_raises_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.update(999, text="x")


def test_delete_and_delete_all(repo):
    records = _seed(repo, 3)
    assert repo.delete(records[0].id) is True
    assert repo.delete(records[0].id) is False
    assert repo.delete_all() == 2
    assert repo.usage_by_model() == {}


def test_usage_by_model(repo):
    _seed(repo, 2, model="model-a")
    _seed(repo, 1, model="model-b")
    assert repo.usage_by_model() == {"model-a": 2, "model-b": 1}


def test_list_by_model_orders_by_id(repo):
    created = _seed(repo, 3)
    _seed(repo, 2, model="model-b")
    assert [r.id for r in repo.list_by_model("model-a")] == [r.id for r in created]
