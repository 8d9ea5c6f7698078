"""Model-management DTOs: pure Pydantic, zero ORM imports."""
from __future__ import annotations
from pydantic import BaseModel


class ModelInfoRead(BaseModel):
    model_config = {"from_attributes": True}

    name: str
    provider: str
    dimensions: int
    max_tokens: int
    price_per_token: float = 0.0
    available: bool = True
    languages: list[str] | None = None


class CompatibilityResult(BaseModel):
    compatible: bool
    reason: str | None = None
    similarity_score: float


class UsageStats(BaseModel):
    total: int
    by_model: dict[str, int]
