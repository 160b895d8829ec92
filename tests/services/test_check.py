"""Tests for CheckService — read-only integrity reporting."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

import pytest
from sqlalchemy import delete, insert
from sqlalchemy.exc import OperationalError

from kbgraph.domain.labels import EdgeType
from kbgraph.domain.models import User
from kbgraph.infrastructure.database.schema import edges, node_labels
from kbgraph.infrastructure.store import GraphStore
from kbgraph.services.check import CheckService
from kbgraph.services.collection import CollectionService


def _issues(store: GraphStore, user: User, category: str | None = None) -> list[dict]:
    issues = CheckService(store).check(user).data["issues"]
    return [i for i in issues if category is None or i["category"] == category]


class TestHealthyGraph:
    def test_empty_user(self, store: GraphStore, user: User) -> None:
        result = CheckService(store).check(user)
        assert result.ok
        assert result.data["healthy"] is True
        issues = result.data["issues"]
        assert [(i["category"], i["severity"]) for i in issues] == [
            ("root_uniqueness", "warning")
        ]
        assert issues[0]["node_id"] is None

    def test_service_built_graph_is_clean(
        self, store: GraphStore, user: User, root_id: str, make_collection
    ) -> None:
        svc = CollectionService(store)
        make_collection("a", root_id)
        make_collection("b", "a")
        svc.connect(user, "b", root_id, "e1")
        svc.remove(user, "a")
        result = CheckService(store).check(user)
        assert result.data == {"healthy": True, "count": 0, "issues": []}
        assert result.meta == {"nodes": 3, "edges": 2}


class TestRootUniqueness:
    def test_missing_root_with_nodes(self, store: GraphStore, user: User, insert_node) -> None:
        insert_node("c", node_type="collection")
        (issue,) = _issues(store, user, "root_uniqueness")
        assert issue["severity"] == "error"

    def test_two_roots(
        self, store: GraphStore, user: User, root_id: str, insert_node: Callable[..., str]
    ) -> None:
        insert_node("second", node_type="root")
        found = _issues(store, user, "root_uniqueness")
        assert {i["node_id"] for i in found} == {root_id, "second"}
        assert not CheckService(store).check(user).data["healthy"]


class TestContainment:
    def test_uncontained_node_warns(
        self, store: GraphStore, user: User, root_id: str, insert_node
    ) -> None:
        insert_node("floating")
        (issue,) = _issues(store, user, "containment")
        assert issue == {
            "category": "containment",
            "severity": "warning",
            "node_id": "floating",
            "message": "Node is not contained by any collection",
        }

    def test_contained_by_plain_node_warns(
        self, store: GraphStore, user: User, root_id: str, insert_node
    ) -> None:
        insert_node("leaf", parents=(root_id,))
        insert_node("n", parents=("leaf",))
        found = _issues(store, user, "containment")
        assert [i["node_id"] for i in found] == ["n"]

    def test_dangling_edge_is_error(
        self, store: GraphStore, user: User, root_id: str
    ) -> None:
        with store.transaction() as txn:
            txn.create_edge(EdgeType.CONTAINMENT.value, "vanished", root_id, "dangling")
        found = _issues(store, user, "containment")
        assert [(i["severity"], i["node_id"]) for i in found] == [("error", root_id)]


class TestLabels:
    def test_collection_type_without_label(
        self, store: GraphStore, user: User, root_id: str, insert_node
    ) -> None:
        insert_node("c", parents=(root_id,), node_type="collection", labels=frozenset({"Node"}))
        found = _issues(store, user, "label_consistency")
        assert [i["node_id"] for i in found] == ["c"]

    def test_missing_node_label(
        self, store: GraphStore, user: User, root_id: str, make_collection
    ) -> None:
        make_collection("c", root_id)
        with store.engine.begin() as conn:
            conn.execute(
                delete(node_labels).where(
                    node_labels.c.node_id == "c", node_labels.c.label == "Node"
                )
            )
        found = _issues(store, user, "label_consistency")
        assert [i["message"] for i in found] == ["Missing Node label"]

    def test_root_label_flag_mismatch(
        self, store: GraphStore, user: User, root_id: str, make_collection
    ) -> None:
        make_collection("c", root_id)
        with store.engine.begin() as conn:
            conn.execute(insert(node_labels).values(node_id="c", label="RootCollection"))
        found = _issues(store, user, "label_consistency")
        assert [i["node_id"] for i in found] == ["c"]


class TestAuthorship:
    def test_second_author(
        self, store: GraphStore, user: User, root_id: str, make_collection
    ) -> None:
        make_collection("c", root_id)
        with store.engine.begin() as conn:
            conn.execute(
                insert(edges).values(
                    id="auth-2",
                    type=EdgeType.AUTHOR.value,
                    start_id="intruder",
                    end_id="c",
                    properties="{}",
                    created="2026-01-01T00:00:00+00:00",
                )
            )
        (issue,) = _issues(store, user, "authorship")
        assert issue["node_id"] == "c"
        assert issue["severity"] == "error"


class TestCycles:
    def test_cycle_reported(
        self, store: GraphStore, user: User, root_id: str, make_collection
    ) -> None:
        make_collection("a", root_id)
        make_collection("b", "a")
        assert CollectionService(store).connect(user, "a", "b", "back").ok
        found = _issues(store, user, "containment_cycles")
        assert len(found) == 1
        assert found[0]["message"].startswith("Containment cycle: ")
        assert not CheckService(store).check(user).data["healthy"]

    def test_check_never_writes(
        self, store: GraphStore, user: User, root_id: str, make_collection, edge_set
    ) -> None:
        make_collection("a", root_id)
        make_collection("b", "a")
        CollectionService(store).connect(user, "a", "b", "back")
        before = edge_set()
        CheckService(store).check(user)
        assert edge_set() == before


class TestStoreFailures:
    def test_locked_database_reported(
        self, store: GraphStore, user: User, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _locked(conn, author):
            raise OperationalError("SELECT", {}, sqlite3.OperationalError("database is locked"))

        monkeypatch.setattr("kbgraph.services.check.build_containment_graph", _locked)
        result = CheckService(store).check(user)
        assert not result.ok
        assert result.error.code == "STORE_UNAVAILABLE"
        assert "database is locked" in result.error.message
