"""Database engine setup for SQLite with WAL mode.

SQLite is the persistence layer: WAL mode for concurrent reads, FTS5 for
the search index, ACID transactions for graph integrity. The DB is stored
at ``{data_root}/.kbgraph/kbgraph.db``.

Every transaction is opened with ``BEGIN IMMEDIATE`` so the write lock is
taken up front. Two operations contending on the same collection are then
serialized by the database rather than interleaved, which is the isolation
the cascading ``remove`` relies on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine

from kbgraph.infrastructure.database.schema import FTS5_CREATE_SQL, metadata

DATA_DIRNAME = ".kbgraph"
DEFAULT_DB_NAME = "kbgraph.db"


def create_db_engine(db_path: Path, *, busy_timeout: float = 5.0, echo: bool = False) -> Engine:
    """Create a SQLite engine with WAL mode, foreign keys, and immediate transactions."""
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"timeout": busy_timeout},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Hand transaction control to SQLAlchemy's "begin" hook below.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_database(
    data_root: Path,
    *,
    db_name: str = DEFAULT_DB_NAME,
    busy_timeout: float = 5.0,
    echo: bool = False,
) -> Engine:
    """Initialize the kbgraph database at ``{data_root}/.kbgraph/{db_name}``.

    Creates the ``.kbgraph/`` directory, all tables from
    :data:`schema.metadata`, and the FTS5 virtual table.

    Idempotent — safe to call on an existing store.

    Returns the engine ready for use.
    """
    data_dir = data_root / DATA_DIRNAME
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "plugins").mkdir(exist_ok=True)

    engine = create_db_engine(data_dir / db_name, busy_timeout=busy_timeout, echo=echo)

    metadata.create_all(engine)

    with engine.begin() as conn:
        conn.execute(text(FTS5_CREATE_SQL))

    return engine


def db_path_for(data_root: Path, db_name: str = DEFAULT_DB_NAME) -> Path:
    """Path of the database file for *data_root*."""
    return data_root / DATA_DIRNAME / db_name
