"""Baseline schema — users, labeled nodes, typed edges, event WAL.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-09-02

Databases created by ``init_database`` get stamped at this revision
without running it; empty databases get it applied during
``kbgraph upgrade``.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "nodes",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("is_root_collection", sa.Integer, server_default="0"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )
    op.create_index("ix_nodes_type", "nodes", ["type"])

    op.create_table(
        "users",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("root_id", sa.Text, sa.ForeignKey("nodes.id"), unique=True),
        sa.Column("created", sa.Text, nullable=False),
    )

    op.create_table(
        "node_labels",
        sa.Column("node_id", sa.Text, sa.ForeignKey("nodes.id"), nullable=False),
        sa.Column("label", sa.Text, nullable=False),
        sa.UniqueConstraint("node_id", "label"),
    )
    op.create_index("ix_node_labels_label", "node_labels", ["label"])

    op.create_table(
        "edges",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("start_id", sa.Text, nullable=False),
        sa.Column("end_id", sa.Text, sa.ForeignKey("nodes.id"), nullable=False),
        sa.Column("properties", sa.Text),
        sa.Column("created", sa.Text, nullable=False),
        sa.UniqueConstraint("type", "start_id", "end_id"),
    )
    op.create_index("ix_edges_start", "edges", ["start_id"])
    op.create_index("ix_edges_end", "edges", ["end_id"])
    op.create_index("ix_edges_type", "edges", ["type"])

    op.create_table(
        "event_wal",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hook_name", sa.Text, nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("error", sa.Text),
        sa.Column("retries", sa.Integer, server_default="0"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("completed", sa.Text),
    )

    # FTS5 virtual table (raw SQL: alembic cannot express virtual tables)
    op.execute("CREATE VIRTUAL TABLE IF NOT EXISTS nodes_fts USING fts5(id UNINDEXED, name)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS nodes_fts")
    op.drop_table("event_wal")
    op.drop_table("edges")
    op.drop_table("node_labels")
    op.drop_table("users")
    op.drop_table("nodes")
