"""Shared pytest fixtures and test helpers for kbgraph tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from kbgraph.config.settings import KbSettings
from kbgraph.domain.labels import EdgeType, NodeType, labels_for
from kbgraph.domain.models import User
from kbgraph.infrastructure.database.engine import init_database
from kbgraph.infrastructure.store import GraphStore
from kbgraph.services.collection import CollectionService
from kbgraph.services.telemetry import disable_telemetry

TEST_USER = "TEST__user"


class SequenceAllocator:
    """Deterministic allocator: ``gen-1``, ``gen-2``, ..."""

    def __init__(self, prefix: str = "gen") -> None:
        self._prefix = prefix
        self._n = 0

    def generate(self) -> str:
        self._n += 1
        return f"{self._prefix}-{self._n}"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer KBGRAPH_* environment variables out of every test."""
    for var in ("KBGRAPH_CONFIG", "KBGRAPH_USER_ID", "KBGRAPH_VERBOSE", "KBGRAPH_JSON_OUTPUT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _reset_process_state() -> Iterator[None]:
    """Undo telemetry and root-logger changes made by CLI invocations."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    disable_telemetry()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def settings(tmp_path: Path) -> KbSettings:
    return KbSettings.from_cli(data_root=tmp_path)


@pytest.fixture
def store(settings: KbSettings) -> Iterator[GraphStore]:
    """Initialized store on a temp directory with a deterministic allocator.

    No event bus: services run with events disabled.
    """
    s = GraphStore(settings, allocator=SequenceAllocator())
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def store_with_events(store: GraphStore) -> GraphStore:
    """The ``store`` fixture with a synchronous event bus (search indexing on)."""
    store.init_event_bus(sync=True)
    return store


@pytest.fixture
def user() -> User:
    return User(id=TEST_USER)


@pytest.fixture
def root_id(store: GraphStore, user: User) -> str:
    """Id of the test user's root collection."""
    result = CollectionService(store).create_root_collection(user)
    assert result.ok, result.error
    return str(result.data["id"])


@pytest.fixture
def _isolated_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp directory so the CLI creates an isolated store.

    Use via ``@pytest.mark.usefixtures("_isolated_root")`` on command test
    classes.
    """
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Graph-building helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_collection(store: GraphStore, user: User) -> Callable[..., dict[str, Any]]:
    """Factory: create a collection through the service, asserting success."""

    def _make(node_id: str, parent_id: str, name: str | None = None) -> dict[str, Any]:
        result = CollectionService(store).create(user, node_id, parent_id, name or node_id)
        assert result.ok, result.error
        return result.data

    return _make


@pytest.fixture
def insert_node(store: GraphStore, user: User) -> Callable[..., str]:
    """Factory: write a node, its author edge and optional containment edges directly.

    Lays down shapes the services never produce (foreign authors, broken
    label sets, hand-picked edge ids) as well as ordinary nodes.
    """

    def _insert(
        node_id: str,
        *,
        parents: tuple[str, ...] = (),
        node_type: str = NodeType.NODE.value,
        name: str | None = None,
        author: str | None = None,
        labels: frozenset[str] | None = None,
    ) -> str:
        with store.transaction() as txn:
            txn.ensure_user(author or user.id)
            txn.create_node(
                labels if labels is not None else labels_for(node_type),
                {
                    "id": node_id,
                    "name": name or node_id,
                    "type": node_type,
                    "is_root_collection": node_type == NodeType.ROOT.value,
                },
            )
            txn.create_edge(EdgeType.AUTHOR.value, author or user.id, node_id)
            for parent in parents:
                txn.create_edge(EdgeType.CONTAINMENT.value, node_id, parent, f"{node_id}->{parent}")
        return node_id

    return _insert


@pytest.fixture
def edge_set(store: GraphStore) -> Callable[[], set[tuple[str, str, str]]]:
    """Snapshot of every containment edge as ``(start, end, id)``."""

    def _snapshot() -> set[tuple[str, str, str]]:
        with store.transaction() as txn:
            return {(e.start, e.end, e.id) for e in txn.match_edges()}

    return _snapshot


@pytest.fixture
def node_count(store: GraphStore) -> Callable[[], int]:
    def _count() -> int:
        with store.transaction() as txn:
            return len(txn.match_nodes())

    return _count
