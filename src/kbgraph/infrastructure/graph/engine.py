"""Containment graph — a NetworkX view of one user's collection graph.

Built on demand from an open connection so it reflects the caller's
transaction. Nothing is cached between invocations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

import networkx as nx
from sqlalchemy import select

from kbgraph.domain.labels import EdgeType
from kbgraph.infrastructure.database.schema import edges, node_labels, nodes

if TYPE_CHECKING:
    from sqlalchemy import Connection

ContainmentGraph: TypeAlias = nx.DiGraph


def build_containment_graph(conn: Connection, author: str) -> ContainmentGraph:
    """Build a DiGraph of the nodes *author* owns and the containment edges among them.

    Edges point child -> container, matching the stored direction. Node
    attributes: ``name``, ``type``, ``is_root_collection``, ``labels``.
    Edge attributes: ``id``.
    """
    owned = select(edges.c.end_id).where(
        edges.c.type == EdgeType.AUTHOR.value,
        edges.c.start_id == author,
    )

    g: ContainmentGraph = nx.DiGraph()
    for row in conn.execute(select(nodes).where(nodes.c.id.in_(owned))):
        g.add_node(
            row.id,
            name=row.name,
            type=row.type,
            is_root_collection=bool(row.is_root_collection),
            labels=set(),
        )

    for row in conn.execute(
        select(node_labels.c.node_id, node_labels.c.label).where(node_labels.c.node_id.in_(owned))
    ):
        g.nodes[row.node_id]["labels"].add(row.label)

    for row in conn.execute(
        select(edges.c.id, edges.c.start_id, edges.c.end_id).where(
            edges.c.type == EdgeType.CONTAINMENT.value,
            edges.c.start_id.in_(owned),
            edges.c.end_id.in_(owned),
        )
    ):
        g.add_edge(row.start_id, row.end_id, id=row.id)
    return g


def containment_cycles(g: ContainmentGraph, *, limit: int = 10) -> list[list[str]]:
    """Return up to *limit* simple cycles in the containment graph."""
    found: list[list[str]] = []
    for cycle in nx.simple_cycles(g):
        found.append(cycle)
        if len(found) >= limit:
            break
    return found
