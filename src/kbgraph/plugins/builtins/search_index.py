"""Built-in search indexer: keeps ``nodes_fts`` in step with node names.

Runs outside the graph transaction as a best-effort follower. A failure
here leaves the graph write intact and the event in the WAL for retry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pluggy
from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

hookimpl = pluggy.HookimplMarker("kbgraph")

logger = logging.getLogger(__name__)

# Retried events can arrive after a newer rename has been indexed, so the
# stored name wins over the one carried in the event.
_UPSERT_SQL = text(
    """
    INSERT INTO nodes_fts (id, name)
    SELECT :id, COALESCE((SELECT name FROM nodes WHERE id = :id), :name)
    """
)


class SearchIndexPlugin:
    """Writes one FTS5 row per node, replacing any previous row for the id."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @hookimpl
    def index_node(self, node_id: str, name: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(text("DELETE FROM nodes_fts WHERE id = :id"), {"id": node_id})
            conn.execute(_UPSERT_SQL, {"id": node_id, "name": name})
        logger.debug("Indexed node %s", node_id)
