"""SQLite database engine and schema via SQLAlchemy Core."""

from kbgraph.infrastructure.database.engine import create_db_engine, init_database
from kbgraph.infrastructure.database.schema import (
    edges,
    event_wal,
    metadata,
    node_labels,
    nodes,
    users,
)

__all__ = [
    "create_db_engine",
    "edges",
    "event_wal",
    "init_database",
    "metadata",
    "node_labels",
    "nodes",
    "users",
]
