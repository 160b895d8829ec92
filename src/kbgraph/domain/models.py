"""Graph entity models: users, nodes, and edges.

Nodes are a single entity type whose capabilities are expressed by their
label set (see :mod:`kbgraph.domain.labels`). Edges are either containment
edges (child -> container) or author edges (user -> node).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from kbgraph.domain.labels import EdgeType, Label, NodeType, can_contain, is_root


class User(BaseModel):
    """An already-authenticated user descriptor.

    The id is opaque and supplied by the identity layer.
    """

    model_config = {"frozen": True}

    id: str = Field(min_length=1)


class AbstractNode(BaseModel):
    """A node in the collection graph."""

    model_config = {"frozen": True}

    id: str
    name: str
    type: NodeType
    is_root_collection: bool = False
    labels: frozenset[str] = Field(default_factory=lambda: frozenset({Label.NODE.value}))
    created: str | None = None
    modified: str | None = None

    @property
    def is_collection(self) -> bool:
        return can_contain(self.labels)

    @property
    def is_root(self) -> bool:
        return self.is_root_collection or is_root(self.labels)

    def to_projection(self) -> dict[str, Any]:
        """Public projection: ``{id, name, type}`` plus the root flag for roots."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
        }
        if self.is_root_collection:
            data["is_root_collection"] = True
        return data

    def to_detail(self) -> dict[str, Any]:
        """Projection including labels and timestamps (read operations)."""
        data = self.to_projection()
        data["labels"] = sorted(self.labels)
        data["created"] = self.created
        data["modified"] = self.modified
        return data


class AbstractEdge(BaseModel):
    """A directed, typed edge. Containment edges point child -> container."""

    model_config = {"frozen": True}

    id: str
    type: EdgeType = EdgeType.CONTAINMENT
    start: str
    end: str
    properties: dict[str, Any] = Field(default_factory=dict)
    created: str | None = None

    @property
    def pair(self) -> tuple[str, str]:
        return (self.start, self.end)

    def to_projection(self) -> dict[str, Any]:
        """Public projection: ``{start, end, id}``."""
        return {"start": self.start, "end": self.end, "id": self.id}
