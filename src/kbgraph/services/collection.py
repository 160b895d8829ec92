"""CollectionService — structural mutations of a user's collection graph.

Every public method runs as exactly one store transaction. All validation
happens before the first write, so an early return inside the transaction
commits nothing. Events (``post_create``, ``post_rename``, ``post_remove``,
``index_node``) are dispatched only after the transaction has committed.

Idempotency-key contract for caller-supplied ids:

- same id, identical payload: no-op returning the existing projection
  with ``meta["replayed"] = True``
- same id, different payload: ``CONFLICT``
- new id for an endpoint pair that is already linked: ``CONFLICT``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kbgraph.domain.ids import derive_edge_id, validate_id
from kbgraph.domain.labels import EdgeType, Label, NodeType, labels_for
from kbgraph.infrastructure.store import StoreError
from kbgraph.services._helpers import clean_name, now_iso
from kbgraph.services.base import BaseService
from kbgraph.services.contracts import (
    EdgeData,
    NodeData,
    RemoveNodeResultData,
    RemoveResultData,
    dump_validated,
)
from kbgraph.services.result import (
    CONFLICT,
    NOT_FOUND,
    VALIDATION_FAILED,
    ServiceResult,
)
from kbgraph.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from kbgraph.domain.models import AbstractEdge, AbstractNode, User
    from kbgraph.infrastructure.store import StoreTransaction

logger = logging.getLogger(__name__)

_CONTAINMENT = EdgeType.CONTAINMENT.value

DEFAULT_NODE_NAME = "Untitled"


def _replayed(op: str, data: dict[str, Any]) -> ServiceResult:
    return ServiceResult(ok=True, op=op, data=data, meta={"replayed": True})


class CollectionService(BaseService):
    """Creates, links, restructures and demotes collections and nodes."""

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------

    @traced
    def create_root_collection(self, user: User) -> ServiceResult:
        """Create the user's root collection, or return the existing one.

        At most one root exists per user; re-invocation is a no-op.
        """
        op = "create_root_collection"
        warnings: list[str] = []
        try:
            with self._store.transaction() as txn:
                txn.ensure_user(user.id)
                existing = txn.root_for(user.id)
                if existing is not None:
                    return _replayed(op, dump_validated(NodeData, existing.to_projection()))
                root = self._create_root(txn, user)
        except StoreError as exc:
            return self._store_failure(op, exc)

        self._announce_root(user, root, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(NodeData, root.to_projection()),
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @traced
    def create(
        self,
        user: User,
        node_id: str,
        parent_id: str,
        name: str,
    ) -> ServiceResult:
        """Create a collection *node_id* contained by *parent_id*.

        Writes the node, one containment edge ``node_id -> parent_id`` with
        an allocated id, and the author edge, atomically.
        """
        return self._create_entity("create", NodeType.COLLECTION, user, node_id, parent_id, name)

    @traced
    def create_node(
        self,
        user: User,
        node_id: str,
        collection_id: str,
        name: str = DEFAULT_NODE_NAME,
    ) -> ServiceResult:
        """Create a plain node *node_id* inside *collection_id*.

        Same shape as :meth:`create` but the node carries only the ``Node``
        label: it can be a member of collections but never holds members.
        """
        return self._create_entity(
            "create_node", NodeType.NODE, user, node_id, collection_id, name
        )

    def _create_entity(
        self,
        op: str,
        node_type: NodeType,
        user: User,
        node_id: str,
        parent_id: str,
        name: str,
    ) -> ServiceResult:
        warnings: list[str] = []
        display = clean_name(name)
        if not display:
            return ServiceResult.failure(op, VALIDATION_FAILED, "Name must not be empty")
        if not validate_id(node_id):
            return ServiceResult.failure(op, VALIDATION_FAILED, f"Invalid node id: {node_id!r}")

        try:
            with self._store.transaction() as txn:
                txn.ensure_user(user.id)

                with trace_span("validate"):
                    if txn.get_node(node_id) is not None:
                        return self._create_replay(
                            txn, op, node_type, user, node_id, parent_id, display
                        )

                    parent = txn.get_node(parent_id, author=user.id)
                    if parent is None:
                        return ServiceResult.failure(
                            op, NOT_FOUND, f"Parent not found: {parent_id}", id=parent_id
                        )
                    if not parent.is_collection:
                        return ServiceResult.failure(
                            op,
                            VALIDATION_FAILED,
                            f"Parent {parent_id} cannot contain nodes",
                            id=parent_id,
                        )

                with trace_span("persist"):
                    now = now_iso()
                    txn.create_node(
                        labels_for(node_type),
                        {
                            "id": node_id,
                            "name": display,
                            "type": node_type.value,
                            "created": now,
                            "modified": now,
                        },
                    )
                    edge_id = txn.create_edge(_CONTAINMENT, node_id, parent_id)
                    txn.create_edge(EdgeType.AUTHOR.value, user.id, node_id)
                    node = txn.get_node(node_id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        assert node is not None
        logger.info(
            "Created %s %s under %s (edge %s)", node_type.value, node_id, parent_id, edge_id
        )
        self._dispatch_event("post_create", self._event_payload(user, node, parent_id), warnings)
        self._dispatch_event("index_node", {"node_id": node_id, "name": display}, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(NodeData, node.to_projection()),
            warnings=warnings,
        )

    @traced
    def rename(self, user: User, node_id: str, name: str) -> ServiceResult:
        """Change a node's display name. The root may be renamed."""
        op = "rename"
        warnings: list[str] = []
        display = clean_name(name)
        if not display:
            return ServiceResult.failure(op, VALIDATION_FAILED, "Name must not be empty")

        try:
            with self._store.transaction() as txn:
                node = txn.get_node(node_id, author=user.id)
                if node is None:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Node not found: {node_id}", id=node_id
                    )
                if node.name == display:
                    return _replayed(op, dump_validated(NodeData, node.to_projection()))
                old_name = node.name
                txn.update_node(node_id, name=display, modified=now_iso())
                node = txn.get_node(node_id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        assert node is not None
        self._dispatch_event(
            "post_rename",
            {"user_id": user.id, "node_id": node_id, "old_name": old_name, "name": display},
            warnings,
        )
        self._dispatch_event("index_node", {"node_id": node_id, "name": display}, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(NodeData, node.to_projection()),
            warnings=warnings,
        )

    @traced
    def remove(self, user: User, collection_id: str) -> ServiceResult:
        """Remove a collection's containment capability, re-homing its children.

        Children of the collection are redirected to every parent of the
        collection; the first parent keeps the original child edge id and
        further parents get derived ids. With no parents the children go
        to the user's root. The collection itself is demoted to a plain
        node; its identity, name and own parent edges are unchanged.

        Removing the root, or a node that is already plain, is a no-op.
        """
        op = "remove"
        warnings: list[str] = []
        redirected: list[AbstractEdge] = []
        created_root: AbstractNode | None = None

        try:
            with self._store.transaction() as txn:
                target = txn.get_node(collection_id, author=user.id)
                if target is None:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Collection not found: {collection_id}", id=collection_id
                    )
                if target.is_root:
                    logger.debug("Ignoring remove of root collection %s", collection_id)
                    return ServiceResult(
                        ok=True, op=op, data={"id": collection_id, "removed": False}
                    )
                if not target.is_collection:
                    return _replayed(op, {"id": collection_id, "removed": False})

                with trace_span("read_parents"):
                    destinations, created_root = self._redirect_targets(txn, user, target)

                with trace_span("read_children"):
                    children = txn.match_edges(end=collection_id)

                with trace_span("redirect") as span:
                    redirected = self._redirect_children(
                        txn, collection_id, children, destinations
                    )
                    if span:
                        span.annotate("edges", len(redirected))

                with trace_span("demote"):
                    self._demote(txn, target)
        except StoreError as exc:
            return self._store_failure(op, exc)

        logger.info(
            "Removed collection %s: %d child edge(s) re-homed to %s",
            collection_id,
            len(redirected),
            ", ".join(destinations) or "nothing",
        )
        if created_root is not None:
            self._announce_root(user, created_root, warnings)
        self._dispatch_event(
            "post_remove",
            {
                "user_id": user.id,
                "node_id": collection_id,
                "redirected": [e.to_projection() for e in redirected],
            },
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                RemoveResultData,
                {
                    "id": collection_id,
                    "removed": True,
                    "redirected": [e.to_projection() for e in redirected],
                },
            ),
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Containment edges
    # ------------------------------------------------------------------

    @traced
    def connect(
        self,
        user: User,
        source_id: str,
        target_id: str,
        edge_id: str,
    ) -> ServiceResult:
        """Create one containment edge ``source_id -> target_id`` with *edge_id*.

        Independent of current containment state: labels, author edges and
        other edges are untouched.
        """
        return self._link("connect", user, source_id, target_id, edge_id, require_container=False)

    @traced
    def add_node(
        self,
        user: User,
        collection_id: str,
        node_id: str,
        edge_id: str,
    ) -> ServiceResult:
        """Add *node_id* to *collection_id* without touching its other memberships."""
        return self._link(
            "add_node", user, node_id, collection_id, edge_id, require_container=True
        )

    @traced
    def remove_node(self, user: User, collection_id: str, node_id: str) -> ServiceResult:
        """Delete the containment edge ``node_id -> collection_id``.

        ``data.removed`` reports whether an edge was found and deleted.
        """
        op = "remove_node"
        try:
            with self._store.transaction() as txn:
                missing = self._missing_nodes(txn, user, collection_id, node_id)
                if missing:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Node not found: {missing[0]}", ids=missing
                    )
                deleted = txn.delete_edge(start=node_id, end=collection_id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        if deleted:
            logger.info("Removed %s from collection %s", node_id, collection_id)
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                RemoveNodeResultData,
                {"start": node_id, "end": collection_id, "removed": deleted > 0},
            ),
        )

    @traced
    def move_node(
        self,
        user: User,
        source_collection_id: str,
        node_id: str,
        target_collection_id: str,
        edge_id: str,
    ) -> ServiceResult:
        """Atomically replace ``node_id -> source`` with ``node_id -> target`` (id *edge_id*).

        Replaying a completed move (old edge gone, new edge present with
        this id) is a no-op.
        """
        op = "move_node"
        if not validate_id(edge_id):
            return ServiceResult.failure(op, VALIDATION_FAILED, f"Invalid edge id: {edge_id!r}")
        wanted = {"start": node_id, "end": target_collection_id, "id": edge_id}

        try:
            with self._store.transaction() as txn:
                missing = self._missing_nodes(
                    txn, user, source_collection_id, node_id, target_collection_id
                )
                if missing:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Node not found: {missing[0]}", ids=missing
                    )

                old = txn.match_edges(start=node_id, end=source_collection_id)
                existing = txn.get_edge(edge_id)
                if existing is not None:
                    same = (
                        existing.type == EdgeType.CONTAINMENT
                        and existing.pair == (node_id, target_collection_id)
                    )
                    if same and all(e.id == edge_id for e in old):
                        return _replayed(op, dump_validated(EdgeData, wanted))
                    return ServiceResult.failure(
                        op, CONFLICT, f"Edge id already in use: {edge_id}", id=edge_id
                    )
                if not old:
                    return ServiceResult.failure(
                        op,
                        NOT_FOUND,
                        f"{node_id} is not contained by {source_collection_id}",
                        start=node_id,
                        end=source_collection_id,
                    )

                invalid = self._container_error(txn, node_id, target_collection_id)
                if invalid:
                    return ServiceResult.failure(op, VALIDATION_FAILED, invalid)
                if source_collection_id != target_collection_id and txn.match_edges(
                    start=node_id, end=target_collection_id
                ):
                    return ServiceResult.failure(
                        op,
                        CONFLICT,
                        f"{node_id} is already contained by {target_collection_id}",
                        start=node_id,
                        end=target_collection_id,
                    )

                txn.delete_edge(old[0].id)
                txn.create_edge(_CONTAINMENT, node_id, target_collection_id, edge_id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        logger.info(
            "Moved %s from %s to %s (edge %s)",
            node_id,
            source_collection_id,
            target_collection_id,
            edge_id,
        )
        return ServiceResult(ok=True, op=op, data=dump_validated(EdgeData, wanted))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _create_root(self, txn: StoreTransaction, user: User) -> AbstractNode:
        """Write a root node, its author edge, and the user's root pointer."""
        now = now_iso()
        root_id = txn.allocator.generate()
        txn.create_node(
            labels_for(NodeType.ROOT),
            {
                "id": root_id,
                "name": clean_name(self._store.settings.root.name) or "My Knowledge Base",
                "type": NodeType.ROOT.value,
                "is_root_collection": True,
                "created": now,
                "modified": now,
            },
        )
        txn.create_edge(EdgeType.AUTHOR.value, user.id, root_id)
        txn.set_root(user.id, root_id)
        root = txn.get_node(root_id)
        assert root is not None
        return root

    @staticmethod
    def _create_replay(
        txn: StoreTransaction,
        op: str,
        node_type: NodeType,
        user: User,
        node_id: str,
        parent_id: str,
        name: str,
    ) -> ServiceResult:
        """Resolve a create whose node id already exists."""
        node = txn.get_node(node_id, author=user.id)
        if (
            node is not None
            and node.type == node_type
            and node.name == name
            and txn.match_edges(start=node_id, end=parent_id)
        ):
            return _replayed(op, dump_validated(NodeData, node.to_projection()))
        return ServiceResult.failure(
            op, CONFLICT, f"Node id already in use: {node_id}", id=node_id
        )

    def _link(
        self,
        op: str,
        user: User,
        start: str,
        end: str,
        edge_id: str,
        *,
        require_container: bool,
    ) -> ServiceResult:
        """Shared body of ``connect`` and ``add_node``."""
        if not validate_id(edge_id):
            return ServiceResult.failure(op, VALIDATION_FAILED, f"Invalid edge id: {edge_id!r}")
        wanted = {"start": start, "end": end, "id": edge_id}

        try:
            with self._store.transaction() as txn:
                existing = txn.get_edge(edge_id)
                if existing is not None:
                    if existing.type == EdgeType.CONTAINMENT and existing.pair == (start, end):
                        return _replayed(op, dump_validated(EdgeData, wanted))
                    return ServiceResult.failure(
                        op, CONFLICT, f"Edge id already in use: {edge_id}", id=edge_id
                    )

                missing = self._missing_nodes(txn, user, start, end)
                if missing:
                    return ServiceResult.failure(
                        op, NOT_FOUND, f"Node not found: {missing[0]}", ids=missing
                    )
                if require_container:
                    invalid = self._container_error(txn, start, end)
                    if invalid:
                        return ServiceResult.failure(op, VALIDATION_FAILED, invalid)

                linked = txn.match_edges(start=start, end=end)
                if linked:
                    return ServiceResult.failure(
                        op,
                        CONFLICT,
                        f"{start} is already contained by {end} (edge {linked[0].id})",
                        start=start,
                        end=end,
                        id=linked[0].id,
                    )
                txn.create_edge(_CONTAINMENT, start, end, edge_id)
        except StoreError as exc:
            return self._store_failure(op, exc)

        logger.info("Linked %s -> %s (edge %s)", start, end, edge_id)
        return ServiceResult(ok=True, op=op, data=dump_validated(EdgeData, wanted))

    @staticmethod
    def _missing_nodes(txn: StoreTransaction, user: User, *node_ids: str) -> list[str]:
        """Return the ids among *node_ids* that the user has not authored."""
        unique = list(dict.fromkeys(node_ids))
        found = {n.id for n in txn.match_nodes(ids=unique, author=user.id)}
        return [nid for nid in unique if nid not in found]

    @staticmethod
    def _container_error(txn: StoreTransaction, node_id: str, container_id: str) -> str | None:
        """Why *container_id* cannot take *node_id* as a child, or None."""
        if node_id == container_id:
            return f"{node_id} cannot contain itself"
        container = txn.get_node(container_id)
        if container is None or not container.is_collection:
            return f"{container_id} cannot contain nodes"
        return None

    def _redirect_targets(
        self,
        txn: StoreTransaction,
        user: User,
        target: AbstractNode,
    ) -> tuple[list[str], AbstractNode | None]:
        """Containers that inherit *target*'s children, in parent-edge order.

        Falls back to the user's root when *target* has no parent. The second
        element is the root when this call had to create it.
        """
        parents = [e.end for e in txn.match_edges(start=target.id) if e.end != target.id]
        if parents:
            return list(dict.fromkeys(parents)), None
        txn.ensure_user(user.id)
        root = txn.root_for(user.id)
        if root is not None:
            return [root.id], None
        root = self._create_root(txn, user)
        return [root.id], root

    def _announce_root(self, user: User, root: AbstractNode, warnings: list[str]) -> None:
        """Post-commit events for a root created on the user's behalf."""
        logger.info("Created root collection %s for user %s", root.id, user.id)
        self._dispatch_event("post_create", self._event_payload(user, root), warnings)
        self._dispatch_event("index_node", {"node_id": root.id, "name": root.name}, warnings)

    @staticmethod
    def _redirect_children(
        txn: StoreTransaction,
        collection_id: str,
        children: list[AbstractEdge],
        destinations: list[str],
    ) -> list[AbstractEdge]:
        """Point every child edge at each destination; return the resulting edges.

        The first destination a child is not already in keeps the child's
        original edge (redirected in place). Each further destination gets
        a new edge with an id derived from the original edge id. A child
        that is already in every destination loses its edge to the
        collection.
        """
        results: list[AbstractEdge] = []
        for edge in children:
            child = edge.start
            if child == collection_id:
                txn.delete_edge(edge.id)
                continue

            current = {e.end for e in txn.match_edges(start=child)}
            wanted = [d for d in destinations if d != child and d not in current]
            if not wanted:
                txn.delete_edge(edge.id)
                continue

            first, *rest = wanted
            txn.redirect_edge(edge.id, first)
            results.append(edge.model_copy(update={"end": first}))
            for dest in rest:
                derived = derive_edge_id(edge.id, dest)
                if txn.get_edge(derived) is not None:
                    derived = txn.allocator.generate()
                txn.create_edge(_CONTAINMENT, child, dest, derived)
                results.append(edge.model_copy(update={"id": derived, "end": dest}))
        return results

    @staticmethod
    def _demote(txn: StoreTransaction, target: AbstractNode) -> None:
        """Drop the Collection capability and set ``type = node``."""
        txn.update_node_labels(target.id, remove=[Label.COLLECTION.value])
        txn.update_node(target.id, type=NodeType.NODE.value, modified=now_iso())

    @staticmethod
    def _event_payload(
        user: User, node: AbstractNode, parent_id: str | None = None
    ) -> dict[str, Any]:
        return {
            "user_id": user.id,
            "node_id": node.id,
            "name": node.name,
            "type": node.type.value,
            "parent_id": parent_id,
        }
