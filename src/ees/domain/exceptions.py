from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ees.schemas.models import CompatibilityResult
    from ees.schemas.migration import MigrationResult


class EESError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(EESError):
    """Requested resource does not exist."""


class ValidationError(EESError):
    """Caller-supplied input is malformed (blank URI, empty text, ...)."""


class StoreError(EESError):
    """A database query or constraint failed."""


# ------------------------------------------------------------------
# Provider failures
# ------------------------------------------------------------------


class ProviderErrorKind(str, Enum):
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    MODEL = "model"


class ProviderError(EESError):
    """Failure reported by an embedding backend.

    ``kind`` is the discriminant callers should branch on; the subclasses
    exist so ``except`` clauses can stay narrow where that reads better.
    """

    kind: ProviderErrorKind = ProviderErrorKind.MODEL

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        model_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.model_name = model_name


class ProviderConnectionError(ProviderError):
    kind = ProviderErrorKind.CONNECTION


class AuthenticationError(ProviderError):
    kind = ProviderErrorKind.AUTHENTICATION


class RateLimitError(ProviderError):
    kind = ProviderErrorKind.RATE_LIMIT


class ModelError(ProviderError):
    kind = ProviderErrorKind.MODEL


# ------------------------------------------------------------------
# Search / migration
# ------------------------------------------------------------------


class DimensionMismatchError(EESError):
    """A stored vector and the query vector have different lengths."""

    def __init__(self, *, expected: int, actual: int, record_id: int | None = None) -> None:
        where = f" (record {record_id})" if record_id is not None else ""
        super().__init__(
            f"Vector dimension mismatch{where}: query has {expected}, stored has {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.record_id = record_id


class ModelNotFoundError(EESError):
    """No registered provider offers the requested model."""


class IncompatibleModelsError(EESError):
    def __init__(self, message: str, result: "CompatibilityResult") -> None:
        super().__init__(message)
        self.result = result


class MigrationError(EESError):
    """Migration aborted; ``partial_result`` holds everything processed so far."""

    def __init__(self, message: str, partial_result: "MigrationResult") -> None:
        super().__init__(message)
        self.partial_result = partial_result
