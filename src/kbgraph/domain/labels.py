"""Capability labels, node types, and their canonical label sets.

A node's label set is its only polymorphism mechanism: there is no class
hierarchy, only capability membership that can be gained or lost.

INVARIANT: ``Collection`` is in a node's labels iff its type is
``collection`` or ``root``.
"""

from __future__ import annotations

from enum import StrEnum


class Label(StrEnum):
    """Capability tags carried by graph nodes."""

    NODE = "Node"
    COLLECTION = "Collection"
    ROOT_COLLECTION = "RootCollection"


class NodeType(StrEnum):
    """The ``type`` property of a node."""

    ROOT = "root"
    COLLECTION = "collection"
    NODE = "node"


class EdgeType(StrEnum):
    """Relationship types stored in the edges table."""

    CONTAINMENT = "AbstractEdge"
    AUTHOR = "AUTHOR"


LABELS_FOR_TYPE: dict[NodeType, frozenset[Label]] = {
    NodeType.ROOT: frozenset({Label.NODE, Label.COLLECTION, Label.ROOT_COLLECTION}),
    NodeType.COLLECTION: frozenset({Label.NODE, Label.COLLECTION}),
    NodeType.NODE: frozenset({Label.NODE}),
}


def labels_for(node_type: str) -> frozenset[Label]:
    """Return the canonical label set for *node_type*.

    Raises:
        ValueError: If *node_type* is not a known node type.
    """
    return LABELS_FOR_TYPE[NodeType(node_type)]


def can_contain(labels: frozenset[str] | set[str]) -> bool:
    """Whether a node carrying *labels* may currently hold children."""
    return Label.COLLECTION in labels


def is_root(labels: frozenset[str] | set[str]) -> bool:
    return Label.ROOT_COLLECTION in labels


def labels_consistent(node_type: str, labels: frozenset[str] | set[str]) -> bool:
    """Whether *labels* satisfy the Collection/type invariant for *node_type*.

    Returns False for unknown types.
    """
    try:
        expected = labels_for(node_type)
    except ValueError:
        return False
    return (Label.COLLECTION in labels) == (Label.COLLECTION in expected)
