"""Migration DTOs: pure Pydantic, zero ORM imports."""
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, Field


class MigrationStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class MigrationOptions(BaseModel):
    batch_size: int = Field(default=100, ge=1)
    continue_on_error: bool = True
    preserve_original: bool = False


class MigrationDetail(BaseModel):
    id: int
    uri: str
    status: MigrationStatus
    error: str | None = None


class MigrationResult(BaseModel):
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    details: list[MigrationDetail] = Field(default_factory=list)
