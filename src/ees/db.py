"""Engine singleton and table bootstrap."""
from __future__ import annotations

from pathlib import Path

from sqlmodel import SQLModel, create_engine

from ees.config import settings
from ees.logging import logger


def _make_engine():
    url = settings.database_url
    connect_args: dict = {}
    if url.startswith("sqlite"):
        # Migration workers share the engine across threads.
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=False, connect_args=connect_args)


engine = _make_engine()


def sqlite_file(url: str) -> Path | None:
    """Filesystem path of a file-backed SQLite URL, else ``None``."""
    if not url.startswith("sqlite:///") or ":memory:" in url:
        return None
    return Path(url.removeprefix("sqlite:///"))


def init_db() -> None:
    """Create all tables, then backfill additive changes on older files."""
    from ees.infra.db import engine as infra_engine
    from ees.infra.db.schema_compat import ensure_schema_compat

    db_file = sqlite_file(str(infra_engine.engine.url))
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)

    SQLModel.metadata.create_all(infra_engine.engine)
    ensure_schema_compat(infra_engine.engine)
    logger.info("Database ready at %s", infra_engine.engine.url)
