"""Tests for the per-operation Rich renderers."""

from __future__ import annotations

from kbgraph.output.renderers import render_quiet, render_result
from kbgraph.services.result import ServiceResult


def _ok(op: str, data: dict, **kwargs) -> ServiceResult:
    return ServiceResult(ok=True, op=op, data=data, **kwargs)


class TestMutations:
    def test_node(self) -> None:
        out = render_result(_ok("create", {"id": "c1", "name": "Papers", "type": "collection"}))
        assert "OK  create" in out
        assert "id: c1" in out
        assert "type: collection" in out

    def test_replay_flagged(self) -> None:
        result = _ok("connect", {"start": "a", "end": "b", "id": "e1"}, meta={"replayed": True})
        out = render_result(result)
        assert "(already applied)" in out
        assert "a → b  (edge e1)" in out

    def test_remove_table(self) -> None:
        result = _ok(
            "remove",
            {
                "id": "c",
                "removed": True,
                "redirected": [{"start": "n1", "end": "root", "id": "e1"}],
            },
        )
        out = render_result(result)
        assert "removed: True" in out
        assert "New container" in out
        assert "n1" in out

    def test_remove_node(self) -> None:
        out = render_result(_ok("remove_node", {"start": "n", "end": "c", "removed": False}))
        assert "n from c: no such membership" in out


class TestQueries:
    def test_collection_tree(self) -> None:
        result = _ok(
            "get",
            {
                "collection": {"id": "c", "name": "Papers", "type": "collection"},
                "parents": ["root"],
                "children": [{"id": "n1", "name": "Paper one", "type": "node"}],
                "edges": [{"start": "n1", "end": "c", "id": "e1"}],
            },
        )
        out = render_result(result, verbose=True)
        assert "Papers" in out
        assert "Paper one" in out
        assert "edge e1" in out
        assert "in: root" in out
        assert "1 members" in out

    def test_graph_tree_and_unreachable(self) -> None:
        result = _ok(
            "user_graph",
            {
                "user": "u",
                "root": "r",
                "nodes": [
                    {"id": "r", "name": "Root", "type": "root", "is_root_collection": True},
                    {"id": "c", "name": "Child", "type": "collection"},
                    {"id": "lost", "name": "Lost", "type": "node"},
                ],
                "edges": [{"start": "c", "end": "r", "id": "e1"}],
                "author_edges": [],
            },
        )
        out = render_result(result)
        assert "Root" in out
        assert "Child" in out
        assert "not reachable from root" in out
        assert "3 nodes, 1 containment edges" in out

    def test_graph_cycle_guard(self) -> None:
        result = _ok(
            "user_graph",
            {
                "user": "u",
                "root": "r",
                "nodes": [
                    {"id": "r", "name": "Root", "type": "root"},
                    {"id": "a", "name": "A", "type": "collection"},
                    {"id": "b", "name": "B", "type": "collection"},
                ],
                "edges": [
                    {"start": "a", "end": "r", "id": "e1"},
                    {"start": "b", "end": "a", "id": "e2"},
                    {"start": "a", "end": "b", "id": "e3"},
                ],
                "author_edges": [],
            },
        )
        assert "a (cycle)" in render_result(result)

    def test_search_table(self) -> None:
        result = _ok(
            "search",
            {"query": "pap", "count": 1, "items": [{"id": "c", "name": "Papers", "type": "node"}]},
        )
        out = render_result(result)
        assert "Papers" in out
        assert "1 items" in out


class TestCheck:
    def test_clean(self) -> None:
        out = render_result(_ok("check", {"healthy": True, "count": 0, "issues": []}))
        assert "No issues found." in out

    def test_grouped_issues(self) -> None:
        issues = [
            {"category": "containment", "severity": "warning", "node_id": "n", "message": "m1"},
            {"category": "containment_cycles", "severity": "error", "message": "m2"},
        ]
        out = render_result(_ok("check", {"healthy": False, "count": 2, "issues": issues}))
        assert "containment_cycles" in out
        assert "warning [n]: m1" in out
        assert "1 errors, 1 warnings" in out


class TestErrors:
    def test_error_line(self) -> None:
        result = ServiceResult.failure("create", "NOT_FOUND", "Parent not found: p", id="p")
        out = render_result(result)
        assert "ERROR  create [NOT_FOUND]" in out
        assert "Parent not found: p" in out
        assert "detail" not in out

    def test_verbose_detail(self) -> None:
        result = ServiceResult.failure("create", "NOT_FOUND", "missing", id="p")
        assert "id: p" in render_result(result, verbose=True)

    def test_generic_fallback(self) -> None:
        out = render_result(_ok("mystery", {"k": [1, 2]}))
        assert "k: [1,2]" in out


class TestQuiet:
    def test_ids_from_lists(self) -> None:
        result = _ok("search", {"items": [{"id": "a"}, {"id": "b"}]})
        assert render_quiet(result) == "a\nb"

    def test_issue_node_ids(self) -> None:
        result = _ok("check", {"issues": [{"node_id": "n"}, {"category": "x"}]})
        assert render_quiet(result) == "n\n"

    def test_removed_flag(self) -> None:
        assert render_quiet(_ok("remove", {"id": "c", "removed": False})) == "unchanged"

    def test_error(self) -> None:
        assert render_quiet(ServiceResult.failure("get", "NOT_FOUND", "gone")).startswith(
            "ERROR: get"
        )

    def test_no_id(self) -> None:
        assert render_quiet(_ok("upgrade", {"applied_count": 0})) == "OK: upgrade"
