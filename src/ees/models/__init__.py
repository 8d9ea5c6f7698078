"""ORM models. Importing this package registers every table mapper."""

from ees.models.embedding import Embedding
from ees.models.task_type import TaskType

__all__ = ["Embedding", "TaskType"]
