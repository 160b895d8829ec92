"""QueryService — read-only views of a user's collection graph.

Three surfaces: a single collection with its direct members, the whole
graph a user authored, and full-text search over node names.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from kbgraph.domain.labels import EdgeType
from kbgraph.infrastructure.store import StoreError
from kbgraph.services.base import BaseService
from kbgraph.services.contracts import (
    CollectionDetailData,
    SearchResultData,
    UserGraphData,
    dump_validated,
)
from kbgraph.services.result import NOT_FOUND, VALIDATION_FAILED, ServiceResult
from kbgraph.services.telemetry import get_current_span, trace_span, traced

if TYPE_CHECKING:
    from kbgraph.domain.models import User

_SEARCH_SQL = """
    SELECT n.id, n.name, n.type
    FROM nodes_fts AS fts
    JOIN nodes AS n ON fts.id = n.id
    WHERE nodes_fts MATCH :query
      AND n.id IN (
          SELECT end_id FROM edges WHERE type = :author_type AND start_id = :user_id
      )
    ORDER BY rank
    LIMIT :limit
"""


def fts_query(raw: str) -> str:
    """Quote each whitespace-separated term so FTS5 treats it literally.

    Examples:
        >>> fts_query('reading list')
        '"reading" "list"'
        >>> fts_query('self-help books')
        '"self-help" "books"'

    Embedded double quotes are doubled, FTS5's own escape.
    """
    return " ".join('"' + term.replace('"', '""') + '"' for term in raw.split())


class QueryService(BaseService):
    """Read-only queries. Never writes to the store."""

    @traced
    def get(self, user: User, collection_id: str) -> ServiceResult:
        """Return a collection, its parents, its direct children and their edges."""
        op = "get"
        try:
            with self._store.transaction() as txn:
                node = txn.get_node(collection_id, author=user.id)
                if node is None:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Collection not found: {collection_id}", id=collection_id
                    )
                parents = [e.end for e in txn.match_edges(start=collection_id)]
                child_edges = txn.match_edges(end=collection_id)
                children = txn.match_nodes(ids=[e.start for e in child_edges], author=user.id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                CollectionDetailData,
                {
                    "collection": node.to_detail(),
                    "parents": parents,
                    "children": [c.to_projection() for c in children],
                    "edges": [e.to_projection() for e in child_edges],
                },
            ),
        )

    @traced
    def user_graph(self, user: User) -> ServiceResult:
        """Every node *user* authored, with the containment and author edges among them."""
        op = "user_graph"
        try:
            with self._store.transaction() as txn:
                root = txn.root_for(user.id)
                owned = txn.match_nodes(author=user.id)
                owned_ids = {n.id for n in owned}
                containment = [
                    e for e in txn.match_edges(starts=owned_ids) if e.end in owned_ids
                ]
                authorship = txn.match_edges(edge_type=EdgeType.AUTHOR.value, start=user.id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                UserGraphData,
                {
                    "user": user.id,
                    "root": root.id if root else None,
                    "nodes": [n.to_projection() for n in owned],
                    "edges": [e.to_projection() for e in containment],
                    "author_edges": [e.to_projection() for e in authorship],
                },
            ),
            meta={"node_count": len(owned), "edge_count": len(containment)},
        )

    @traced
    def search(self, user: User, query: str, *, limit: int = 20) -> ServiceResult:
        """Full-text search over the names of nodes *user* authored."""
        op = "search"
        if not query.strip():
            return ServiceResult.failure(op, VALIDATION_FAILED, "Search query cannot be empty")
        if limit < 1:
            return ServiceResult.failure(op, VALIDATION_FAILED, "Limit must be positive")

        params: dict[str, Any] = {
            "query": fts_query(query),
            "author_type": EdgeType.AUTHOR.value,
            "user_id": user.id,
            "limit": limit,
        }
        try:
            with self._store.transaction() as txn, trace_span("fts_match"):
                rows = txn.conn.execute(text(_SEARCH_SQL), params).fetchall()
        except StoreError as exc:
            return self._store_failure(op, exc)

        items = [{"id": r.id, "name": r.name, "type": r.type} for r in rows]
        span = get_current_span()
        if span:
            span.annotate("hits", len(items))
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                SearchResultData, {"query": query, "count": len(items), "items": items}
            ),
        )
