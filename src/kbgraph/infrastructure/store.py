"""GraphStore — transactional labeled-property-graph storage over SQLite.

The GraphStore is the single dependency injected into every service. It
owns the database engine, the identifier allocator, and the plugin event
bus. The :meth:`GraphStore.transaction` context manager yields a
:class:`StoreTransaction` exposing the pattern-based graph primitives
(create/match nodes and edges, relabel, delete) on one database
transaction:

- **Commit** happens when the block exits normally.
- **Rollback** happens on any exception; nothing is partially applied.
- **Driver failures** surface as :class:`StoreUnavailable` (transport,
  locking, I/O) or :class:`StoreConflict` (a constraint rejected a write).

The store holds no graph state between transactions.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from kbgraph.domain.ids import IdentifierAllocator, UuidAllocator
from kbgraph.domain.labels import EdgeType
from kbgraph.domain.models import AbstractEdge, AbstractNode
from kbgraph.infrastructure.database.engine import DATA_DIRNAME, db_path_for, init_database
from kbgraph.infrastructure.database.schema import edges, node_labels, nodes, users

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Connection, Row
    from sqlalchemy.engine import Engine

    from kbgraph.config.settings import KbSettings
    from kbgraph.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class StoreError(Exception):
    """Base class for store failures. The transaction has been rolled back."""


class StoreUnavailable(StoreError):
    """The transaction could not be carried out (transport, lock, or I/O failure)."""


class StoreConflict(StoreError):
    """A write was rejected by a uniqueness or integrity constraint."""


def _now() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# StoreTransaction: yielded to callers within transaction()
# ---------------------------------------------------------------------------


@dataclass
class StoreTransaction:
    """Active transaction context exposing the graph primitives.

    Every read and write made through one instance shares a single
    database transaction, so callers see their own pending writes and
    never observe a concurrent writer's partial state.
    """

    conn: Connection
    _store: GraphStore

    @property
    def allocator(self) -> IdentifierAllocator:
        return self._store.allocator

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def ensure_user(self, user_id: str) -> None:
        """Register *user_id* if it has no row yet."""
        row = self.conn.execute(select(users.c.id).where(users.c.id == user_id)).first()
        if row is None:
            self.conn.execute(insert(users).values(id=user_id, created=_now()))

    def root_for(self, user_id: str) -> AbstractNode | None:
        """Return the user's root collection, or None if not created yet."""
        row = self.conn.execute(select(users.c.root_id).where(users.c.id == user_id)).first()
        if row is None or row.root_id is None:
            return None
        return self.get_node(row.root_id)

    def set_root(self, user_id: str, node_id: str) -> None:
        self.conn.execute(update(users).where(users.c.id == user_id).values(root_id=node_id))

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def create_node(self, labels: Iterable[str], properties: dict[str, Any]) -> str:
        """Insert a node with *labels*. ``properties`` must carry ``id``, ``name``, ``type``."""
        now = _now()
        node_id = str(properties["id"])
        self.conn.execute(
            insert(nodes).values(
                id=node_id,
                name=properties["name"],
                type=properties["type"],
                is_root_collection=int(bool(properties.get("is_root_collection", False))),
                created=properties.get("created") or now,
                modified=properties.get("modified") or now,
            )
        )
        for label in sorted(set(labels)):
            self.conn.execute(insert(node_labels).values(node_id=node_id, label=label))
        return node_id

    def match_nodes(
        self,
        *,
        ids: Iterable[str] | None = None,
        label: str | None = None,
        node_type: str | None = None,
        author: str | None = None,
    ) -> list[AbstractNode]:
        """Return nodes matching every given filter, ordered by creation then id.

        Args:
            ids: Restrict to these node ids.
            label: Require this label.
            node_type: Require this ``type`` property.
            author: Require an AUTHOR edge from this user id.
        """
        stmt = select(nodes)
        if ids is not None:
            id_list = list(ids)
            if not id_list:
                return []
            stmt = stmt.where(nodes.c.id.in_(id_list))
        if node_type is not None:
            stmt = stmt.where(nodes.c.type == node_type)
        if label is not None:
            stmt = stmt.where(
                nodes.c.id.in_(select(node_labels.c.node_id).where(node_labels.c.label == label))
            )
        if author is not None:
            stmt = stmt.where(
                nodes.c.id.in_(
                    select(edges.c.end_id).where(
                        edges.c.type == EdgeType.AUTHOR.value,
                        edges.c.start_id == author,
                    )
                )
            )
        rows = self.conn.execute(stmt.order_by(nodes.c.created, nodes.c.id)).fetchall()
        labels = self._labels_for([r.id for r in rows])
        return [self._hydrate_node(r, labels.get(r.id, frozenset())) for r in rows]

    def get_node(self, node_id: str, *, author: str | None = None) -> AbstractNode | None:
        """Return a single node by id (optionally scoped to *author*), or None."""
        found = self.match_nodes(ids=[node_id], author=author)
        return found[0] if found else None

    def update_node_labels(
        self,
        node_id: str,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> None:
        """Add and remove labels on a node. Adding a present label is a no-op."""
        remove_set = set(remove)
        if remove_set:
            self.conn.execute(
                delete(node_labels).where(
                    node_labels.c.node_id == node_id,
                    node_labels.c.label.in_(sorted(remove_set)),
                )
            )
        current = self._labels_for([node_id]).get(node_id, frozenset())
        for label in sorted(set(add) - current):
            self.conn.execute(insert(node_labels).values(node_id=node_id, label=label))

    def update_node(self, node_id: str, **properties: Any) -> None:
        """Set node properties (``name``, ``type``, ``modified``, ...)."""
        if "is_root_collection" in properties:
            properties["is_root_collection"] = int(bool(properties["is_root_collection"]))
        self.conn.execute(update(nodes).where(nodes.c.id == node_id).values(**properties))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def create_edge(
        self,
        edge_type: str,
        start: str,
        end: str,
        edge_id: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> str:
        """Insert a typed edge ``start -> end``. Allocates an id when none is given."""
        resolved_id = edge_id or self.allocator.generate()
        self.conn.execute(
            insert(edges).values(
                id=resolved_id,
                type=edge_type,
                start_id=start,
                end_id=end,
                properties=json.dumps(properties or {}),
                created=_now(),
            )
        )
        return resolved_id

    def match_edges(
        self,
        *,
        edge_id: str | None = None,
        edge_type: str | None = EdgeType.CONTAINMENT.value,
        start: str | None = None,
        end: str | None = None,
        starts: Iterable[str] | None = None,
        ends: Iterable[str] | None = None,
    ) -> list[AbstractEdge]:
        """Return edges matching every given filter, ordered by creation then id.

        ``edge_type`` defaults to containment edges; pass None for all types.
        """
        stmt = select(edges)
        if edge_id is not None:
            stmt = stmt.where(edges.c.id == edge_id)
        if edge_type is not None:
            stmt = stmt.where(edges.c.type == edge_type)
        if start is not None:
            stmt = stmt.where(edges.c.start_id == start)
        if end is not None:
            stmt = stmt.where(edges.c.end_id == end)
        if starts is not None:
            stmt = stmt.where(edges.c.start_id.in_(list(starts)))
        if ends is not None:
            stmt = stmt.where(edges.c.end_id.in_(list(ends)))
        rows = self.conn.execute(stmt.order_by(edges.c.created, edges.c.id)).fetchall()
        return [self._hydrate_edge(r) for r in rows]

    def get_edge(self, edge_id: str) -> AbstractEdge | None:
        """Return an edge of any type by id, or None."""
        found = self.match_edges(edge_id=edge_id, edge_type=None)
        return found[0] if found else None

    def redirect_edge(self, edge_id: str, new_end: str) -> None:
        """Point an existing edge at *new_end*, keeping its id."""
        self.conn.execute(update(edges).where(edges.c.id == edge_id).values(end_id=new_end))

    def delete_edge(
        self,
        edge_id: str | None = None,
        *,
        start: str | None = None,
        end: str | None = None,
        edge_type: str = EdgeType.CONTAINMENT.value,
    ) -> int:
        """Delete an edge by id, or by its ``(start, end)`` endpoint pair.

        Returns the number of rows deleted.

        Raises:
            ValueError: If neither an id nor a full endpoint pair is given.
        """
        stmt = delete(edges).where(edges.c.type == edge_type)
        if edge_id is not None:
            stmt = stmt.where(edges.c.id == edge_id)
        elif start is not None and end is not None:
            stmt = stmt.where(edges.c.start_id == start, edges.c.end_id == end)
        else:
            msg = "delete_edge requires an edge id or a (start, end) pair"
            raise ValueError(msg)
        return self.conn.execute(stmt).rowcount

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    def _labels_for(self, node_ids: list[str]) -> dict[str, frozenset[str]]:
        if not node_ids:
            return {}
        grouped: dict[str, set[str]] = {}
        rows = self.conn.execute(
            select(node_labels.c.node_id, node_labels.c.label).where(
                node_labels.c.node_id.in_(node_ids)
            )
        )
        for row in rows:
            grouped.setdefault(row.node_id, set()).add(row.label)
        return {nid: frozenset(labels) for nid, labels in grouped.items()}

    @staticmethod
    def _hydrate_node(row: Row[Any], labels: frozenset[str]) -> AbstractNode:
        return AbstractNode(
            id=row.id,
            name=row.name,
            type=row.type,
            is_root_collection=bool(row.is_root_collection),
            labels=labels,
            created=row.created,
            modified=row.modified,
        )

    @staticmethod
    def _hydrate_edge(row: Row[Any]) -> AbstractEdge:
        return AbstractEdge(
            id=row.id,
            type=row.type,
            start=row.start_id,
            end=row.end_id,
            properties=json.loads(row.properties) if row.properties else {},
            created=row.created,
        )


# ---------------------------------------------------------------------------
# GraphStore: the repository
# ---------------------------------------------------------------------------


class GraphStore:
    """Repository encapsulating database access, id allocation, and events.

    Constructed once per process from :class:`KbSettings`. Services receive
    the store via their :class:`BaseService` constructor.
    """

    def __init__(
        self,
        settings: KbSettings,
        *,
        allocator: IdentifierAllocator | None = None,
    ) -> None:
        self._settings = settings
        self._engine: Engine = init_database(
            self.root,
            db_name=settings.store.db_name,
            busy_timeout=settings.store.busy_timeout,
            echo=settings.store.echo,
        )
        self._allocator: IdentifierAllocator = allocator or UuidAllocator()
        self._event_bus: EventBus | None = None

    @property
    def root(self) -> Path:
        """The data root directory."""
        return self._settings.data_root

    @property
    def db_path(self) -> Path:
        return db_path_for(self.root, self._settings.store.db_name)

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def settings(self) -> KbSettings:
        return self._settings

    @property
    def allocator(self) -> IdentifierAllocator:
        return self._allocator

    @property
    def event_bus(self) -> EventBus | None:
        """The plugin event bus (None if not initialized)."""
        return self._event_bus

    def init_event_bus(self, *, sync: bool = False) -> None:
        """Initialize the plugin event bus.

        Creates a PluginManager, discovers entry-point plugins, registers
        the built-in search index plugin, and wires up the EventBus.
        """
        from kbgraph.plugins.builtins.search_index import SearchIndexPlugin
        from kbgraph.plugins.event_bus import EventBus
        from kbgraph.plugins.manager import PluginManager

        pm = PluginManager()
        pm.discover_and_load(local_dir=self.root / DATA_DIRNAME / "plugins")

        if self._settings.search.enabled:
            pm.register_plugin(SearchIndexPlugin(self._engine), name="search-index-builtin")

        self._event_bus = EventBus(
            self._engine,
            pm,
            sync=sync,
            max_retries=self._settings.events.max_retries,
            max_workers=self._settings.events.max_workers,
        )

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """One all-or-nothing database transaction.

        Commits when the block exits normally, rolls back on any
        exception. Driver errors are translated to :class:`StoreConflict`
        or :class:`StoreUnavailable` after rollback.

        Usage::

            with store.transaction() as txn:
                txn.create_node(labels, {"id": ..., "name": ..., "type": ...})
                txn.create_edge("AbstractEdge", child_id, parent_id, edge_id)
        """
        try:
            with self._engine.begin() as conn:
                yield StoreTransaction(conn=conn, _store=self)
        except IntegrityError as exc:
            logger.debug("Transaction rejected by constraint", exc_info=True)
            raise StoreConflict(str(exc.orig)) from exc
        except DBAPIError as exc:
            logger.warning("Store transaction failed: %s", exc.orig)
            raise StoreUnavailable(str(exc.orig)) from exc

    def run_transaction(self, unit_of_work: Callable[[StoreTransaction], _T]) -> _T:
        """Run *unit_of_work* inside :meth:`transaction` and return its result."""
        with self.transaction() as txn:
            return unit_of_work(txn)

    def close(self) -> None:
        """Retry undelivered events, stop the event bus, and release pooled connections."""
        if self._event_bus is not None:
            self._event_bus.drain()
            self._event_bus.shutdown()
            self._event_bus = None
        self._engine.dispose()
