"""Embedding DTOs: pure Pydantic, zero ORM imports."""
from __future__ import annotations
from datetime import datetime
from math import ceil
from pydantic import BaseModel, Field, field_validator
from ees.search.vector_search import SimilarityMetric

MAX_URI_LENGTH = 2048


class EmbeddingCreate(BaseModel):
    uri: str
    text: str
    model_name: str | None = None
    task_type: str | None = None
    title: str | None = None
    original_content: str | None = None
    converted_format: str | None = None

    @field_validator("uri")
    @classmethod
    def uri_valid(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("uri must not be empty")
        if len(v) > MAX_URI_LENGTH:
            raise ValueError(f"uri must be at most {MAX_URI_LENGTH} characters")
        return v

    @field_validator("text")
    @classmethod
    def text_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be empty")
        return v


class EmbeddingUpdate(BaseModel):
    text: str | None = None
    task_type: str | None = None

    @field_validator("text")
    @classmethod
    def text_not_empty(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("text must not be empty")
        return v


class EmbeddingRead(BaseModel):
    # Instances are shared through the cache.
    model_config = {"from_attributes": True, "frozen": True}

    id: int
    uri: str
    model_name: str
    text: str
    vector: tuple[float, ...]
    task_type: str | None = None
    original_content: str | None = None
    converted_format: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateResult(BaseModel):
    id: int
    uri: str
    model_name: str


class BatchItemResult(BaseModel):
    uri: str
    status: str
    id: int | None = None
    error: str | None = None


class BatchCreateResult(BaseModel):
    total: int
    successful: int
    failed: int
    results: list[BatchItemResult]


class ListResult(BaseModel):
    records: list[EmbeddingRead]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class SearchQuery(BaseModel):
    query: str
    model_name: str | None = None
    metric: SimilarityMetric = SimilarityMetric.COSINE
    limit: int = Field(default=10, ge=1, le=100)
    threshold: float | None = None

    @field_validator("query")
    @classmethod
    def query_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be empty")
        return v


class SearchHit(BaseModel):
    model_config = {"frozen": True}

    record: EmbeddingRead
    score: float


class SearchResult(BaseModel):
    model_config = {"frozen": True}

    query: str
    model_name: str
    metric: SimilarityMetric
    threshold: float | None = None
    total_results: int
    results: tuple[SearchHit, ...]
