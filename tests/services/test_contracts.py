"""Tests for payload contracts at the service boundary."""

import pytest
from pydantic import ValidationError

from kbgraph.services.contracts import (
    CheckResultData,
    EdgeData,
    NodeData,
    RemoveResultData,
    UserGraphData,
    dump_validated,
)


class TestDumpValidated:
    def test_absent_optional_key_omitted(self) -> None:
        data = dump_validated(NodeData, {"id": "c", "name": "C", "type": "collection"})
        assert data == {"id": "c", "name": "C", "type": "collection"}

    def test_explicit_none_kept(self) -> None:
        data = dump_validated(
            UserGraphData,
            {"user": "u", "root": None, "nodes": [], "edges": [], "author_edges": []},
        )
        assert "root" in data
        assert data["root"] is None

    def test_nested_none_kept(self) -> None:
        issue = {"category": "x", "severity": "warning", "node_id": None, "message": "m"}
        data = dump_validated(CheckResultData, {"healthy": True, "count": 1, "issues": [issue]})
        assert data["issues"] == [issue]

    def test_extra_fields_kept_on_nodes(self) -> None:
        data = dump_validated(
            NodeData, {"id": "c", "name": "C", "type": "collection", "labels": ["Node"]}
        )
        assert data["labels"] == ["Node"]

    def test_rejects_unknown_type(self) -> None:
        with pytest.raises(ValidationError):
            dump_validated(NodeData, {"id": "c", "name": "C", "type": "folder"})

    def test_edge_keys_enforced(self) -> None:
        with pytest.raises(ValidationError):
            dump_validated(EdgeData, {"source": "a", "target": "b", "id": "e"})

    def test_nested_edges(self) -> None:
        data = dump_validated(
            RemoveResultData,
            {"id": "c", "removed": True, "redirected": [{"start": "n", "end": "r", "id": "e"}]},
        )
        assert data["redirected"] == [{"start": "n", "end": "r", "id": "e"}]

    def test_issue_severity(self) -> None:
        with pytest.raises(ValidationError):
            dump_validated(
                CheckResultData,
                {
                    "healthy": True,
                    "count": 1,
                    "issues": [{"category": "x", "severity": "fatal", "message": "m"}],
                },
            )
