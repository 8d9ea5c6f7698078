"""Embedding task types and the prompt prefixes some models expect."""
from __future__ import annotations

from enum import Enum


class TaskType(str, Enum):
    RETRIEVAL_QUERY = "retrieval_query"
    RETRIEVAL_DOCUMENT = "retrieval_document"
    QUESTION_ANSWERING = "question_answering"
    FACT_VERIFICATION = "fact_verification"
    CLASSIFICATION = "classification"
    CLUSTERING = "clustering"
    SEMANTIC_SIMILARITY = "semantic_similarity"
    CODE_RETRIEVAL = "code_retrieval"


_RETRIEVAL_ONLY = (TaskType.RETRIEVAL_QUERY, TaskType.RETRIEVAL_DOCUMENT)

MODEL_TASK_SUPPORT: dict[str, tuple[TaskType, ...]] = {
    "embeddinggemma": tuple(TaskType),
    "nomic-embed-text": _RETRIEVAL_ONLY,
}

# embeddinggemma was trained with these query prefixes.
_GEMMA_QUERY_TASKS = {
    TaskType.RETRIEVAL_QUERY: "search result",
    TaskType.QUESTION_ANSWERING: "question answering",
    TaskType.FACT_VERIFICATION: "fact checking",
    TaskType.CLASSIFICATION: "classification",
    TaskType.CLUSTERING: "clustering",
    TaskType.SEMANTIC_SIMILARITY: "sentence similarity",
    TaskType.CODE_RETRIEVAL: "code retrieval",
}


def _base_model(model_name: str) -> str:
    return model_name.split(":", 1)[0]


def supported_task_types(model_name: str) -> tuple[TaskType, ...]:
    """Task types a model understands; unknown models get retrieval only."""
    return MODEL_TASK_SUPPORT.get(_base_model(model_name), _RETRIEVAL_ONLY)


def is_task_type_supported(model_name: str, task_type: TaskType) -> bool:
    return task_type in supported_task_types(model_name)


def format_text_for_task(
    text: str,
    task_type: TaskType | None,
    model_name: str,
    title: str | None = None,
) -> str:
    """Prefix *text* with the model's task prompt, or return it unchanged."""
    if task_type is None or not is_task_type_supported(model_name, task_type):
        return text
    if _base_model(model_name) != "embeddinggemma":
        return text
    if task_type == TaskType.RETRIEVAL_DOCUMENT:
        return f"title: {title or 'none'} | text: {text}"
    return f"task: {_GEMMA_QUERY_TASKS[task_type]} | query: {text}"
