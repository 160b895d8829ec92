"""SQLAlchemy Core table definitions for the kbgraph store.

The property graph is stored relationally: one row per node, one row per
(node, label), and one row per typed edge. The FTS5 virtual table backing
the search index is created via raw DDL since SQLAlchemy cannot express
SQLite virtual tables natively.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Text, primary_key=True),
    # At most one root per user; the unique constraint backs create-if-absent.
    Column("root_id", Text, ForeignKey("nodes.id"), unique=True),
    Column("created", Text, nullable=False),
)

nodes = Table(
    "nodes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("type", Text, nullable=False),
    Column("is_root_collection", Integer, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

node_labels = Table(
    "node_labels",
    metadata,
    Column("node_id", Text, ForeignKey("nodes.id"), nullable=False),
    Column("label", Text, nullable=False),
    UniqueConstraint("node_id", "label"),
)

# start_id is a node id for containment edges and a user id for AUTHOR
# edges, so it carries no foreign key.
edges = Table(
    "edges",
    metadata,
    Column("id", Text, primary_key=True),
    Column("type", Text, nullable=False),
    Column("start_id", Text, nullable=False),
    Column("end_id", Text, ForeignKey("nodes.id"), nullable=False),
    Column("properties", Text),  # JSON object
    Column("created", Text, nullable=False),
    UniqueConstraint("type", "start_id", "end_id"),
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_nodes_type", nodes.c.type)
Index("ix_node_labels_label", node_labels.c.label)
Index("ix_edges_start", edges.c.start_id)
Index("ix_edges_end", edges.c.end_id)
Index("ix_edges_type", edges.c.type)

event_wal = Table(
    "event_wal",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hook_name", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("status", Text, nullable=False),
    Column("error", Text),
    Column("retries", Integer, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("completed", Text),
)

# FTS5 virtual table DDL, standalone (no content= clause).
# Written by the search index plugin outside the graph transaction.
# id is UNINDEXED: stored for joins but not searched.
FTS5_CREATE_SQL = "CREATE VIRTUAL TABLE IF NOT EXISTS nodes_fts USING fts5(id UNINDEXED, name)"
