"""Re-export the singleton engine from ees.db and register SQLite connection hooks."""
from sqlalchemy import event
from sqlalchemy.engine import Engine
from ees.db import engine          # singleton; created once at ees.db import
import ees.models  # noqa: F401   # registers the ORM table mappers


def _on_connect(dbapi_conn, _):
    # SQLAlchemy emits BEGIN itself (see _on_begin) so SAVEPOINTs nest correctly.
    dbapi_conn.isolation_level = None
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL")
    cur.execute("PRAGMA synchronous=NORMAL")
    cur.close()


def _on_begin(conn):
    conn.exec_driver_sql("BEGIN")


def configure_sqlite(sqlite_engine: Engine) -> None:
    """WAL mode plus driver-level transaction control for a SQLite engine."""
    event.listen(sqlite_engine, "connect", _on_connect)
    event.listen(sqlite_engine, "begin", _on_begin)


if engine.dialect.name == "sqlite":
    configure_sqlite(engine)

__all__ = ["configure_sqlite", "engine"]
