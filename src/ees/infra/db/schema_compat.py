"""Runtime DB compatibility helpers for legacy SQLite schemas.

These helpers backfill additive schema changes for databases created before
task types, converted-content tracking, or the ``(uri, model_name)`` unique
constraint existed. They run after ``SQLModel.metadata.create_all()``, which
never alters an existing table.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

_ADDITIVE_COLUMNS = (
    ("task_type", "VARCHAR"),
    ("original_content", "VARCHAR"),
    ("converted_format", "VARCHAR"),
)


def ensure_schema_compat(engine: Engine) -> None:
    """Apply additive compatibility upgrades for existing SQLite databases."""
    if engine.dialect.name != "sqlite":
        return

    with engine.begin() as conn:
        _ensure_embedding_columns(conn)
        _ensure_uri_model_unique(conn)


def _ensure_embedding_columns(conn: Connection) -> None:
    if not _table_exists(conn, "embedding"):
        return

    for column_name, column_type in _ADDITIVE_COLUMNS:
        if not _column_exists(conn, "embedding", column_name):
            conn.execute(
                text(f"ALTER TABLE embedding ADD COLUMN {column_name} {column_type}")
            )
            logger.info("Applied compatibility upgrade: added embedding.%s", column_name)

    _ensure_index(conn, "ix_embedding_task_type", "embedding", "task_type")


def _ensure_uri_model_unique(conn: Connection) -> None:
    if not _table_exists(conn, "embedding"):
        return
    if _has_unique_index(conn, "embedding", ("uri", "model_name")):
        return

    # Fails loudly on duplicate pairs; those need a manual cleanup first.
    conn.execute(
        text(
            "CREATE UNIQUE INDEX uq_embedding_uri_model "
            "ON embedding (uri, model_name)"
        )
    )
    logger.info("Applied compatibility upgrade: unique index on embedding(uri, model_name)")


def _table_exists(conn: Connection, table_name: str) -> bool:
    return (
        conn.execute(
            text(
                "SELECT 1 FROM sqlite_master "
                "WHERE type = 'table' AND name = :name LIMIT 1"
            ),
            {"name": table_name},
        ).first()
        is not None
    )


def _column_exists(conn: Connection, table_name: str, column_name: str) -> bool:
    rows = conn.execute(text(f"PRAGMA table_info({table_name})")).fetchall()
    return any(row[1] == column_name for row in rows)


def _has_unique_index(
    conn: Connection, table_name: str, columns: tuple[str, ...]
) -> bool:
    # index_list rows: (seq, name, unique, origin, partial)
    for row in conn.execute(text(f"PRAGMA index_list({table_name})")).fetchall():
        if not row[2]:
            continue
        cols = conn.execute(text(f"PRAGMA index_info('{row[1]}')")).fetchall()
        if tuple(c[2] for c in cols) == columns:
            return True
    return False


def _ensure_index(
    conn: Connection, index_name: str, table_name: str, column_name: str
) -> None:
    exists = conn.execute(
        text(
            "SELECT 1 FROM sqlite_master "
            "WHERE type = 'index' AND name = :name LIMIT 1"
        ),
        {"name": index_name},
    ).first()
    if exists is None:
        conn.execute(text(f"CREATE INDEX {index_name} ON {table_name} ({column_name})"))
