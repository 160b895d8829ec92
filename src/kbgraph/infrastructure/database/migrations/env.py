"""Alembic environment: runs revisions on the connection bound by UpgradeService."""

from __future__ import annotations

from alembic import context

from kbgraph.infrastructure.database.schema import metadata

connection = context.config.attributes.get("connection")
if connection is None:
    raise RuntimeError("kbgraph migrations need a bound connection; run `kbgraph upgrade`")

# SQLite cannot ALTER most constraints in place; batch mode rebuilds the table.
context.configure(connection=connection, target_metadata=metadata, render_as_batch=True)
with context.begin_transaction():
    context.run_migrations()
