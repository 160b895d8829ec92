"""Identifier allocation and derivation.

Two ID strategies:
- Allocated: random UUID4 strings, used when a caller omits an id
  (containment edges created by ``create``, author edges, root collections).
- Derived: UUID5 of a parent edge id and a target id, used for fan-out
  edges produced by a cascading ``remove`` so a retried cascade lands on
  the same identifiers.

INVARIANT: IDs are permanent. Once assigned, an ID never changes.
"""

from __future__ import annotations

import re
import uuid
from typing import Protocol

# Namespace for derived fan-out edge ids.
FANOUT_NAMESPACE = uuid.UUID("6f1c4a9e-3b0d-5e8a-9c2f-7d41b8e05a13")

ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]{1,128}$")


class IdentifierAllocator(Protocol):
    """Produces collision-resistant identifiers."""

    def generate(self) -> str: ...


class UuidAllocator:
    """Default allocator returning random UUID4 strings."""

    def generate(self) -> str:
        return str(uuid.uuid4())


def derive_edge_id(edge_id: str, target_id: str) -> str:
    """Deterministic id for a copy of *edge_id* redirected to *target_id*.

    Examples:
        >>> derive_edge_id("e1", "root") == derive_edge_id("e1", "root")
        True
        >>> derive_edge_id("e1", "root") == derive_edge_id("e1", "other")
        False
    """
    return str(uuid.uuid5(FANOUT_NAMESPACE, f"{edge_id}->{target_id}"))


def validate_id(value: str) -> bool:
    """Check whether *value* is an acceptable caller-supplied identifier."""
    return ID_PATTERN.match(value) is not None
