"""Tests for capability labels, node types and the Collection/type invariant."""

import pytest

from kbgraph.domain.labels import (
    LABELS_FOR_TYPE,
    EdgeType,
    Label,
    NodeType,
    can_contain,
    is_root,
    labels_consistent,
    labels_for,
)


class TestLabelsFor:
    def test_root_carries_all_three(self) -> None:
        assert labels_for("root") == {Label.NODE, Label.COLLECTION, Label.ROOT_COLLECTION}

    def test_collection(self) -> None:
        assert labels_for("collection") == {Label.NODE, Label.COLLECTION}

    def test_node(self) -> None:
        assert labels_for(NodeType.NODE) == {Label.NODE}

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError):
            labels_for("folder")

    def test_every_type_has_node_label(self) -> None:
        for labels in LABELS_FOR_TYPE.values():
            assert Label.NODE in labels


class TestCapabilities:
    def test_collection_can_contain(self) -> None:
        assert can_contain({"Node", "Collection"})

    def test_plain_node_cannot_contain(self) -> None:
        assert not can_contain(frozenset({"Node"}))

    def test_is_root(self) -> None:
        assert is_root({"Node", "Collection", "RootCollection"})
        assert not is_root({"Node", "Collection"})

    def test_labels_are_plain_strings(self) -> None:
        assert Label.COLLECTION == "Collection"
        assert EdgeType.CONTAINMENT == "AbstractEdge"
        assert EdgeType.AUTHOR == "AUTHOR"


class TestLabelsConsistent:
    @pytest.mark.parametrize(
        ("node_type", "labels", "expected"),
        [
            ("collection", {"Node", "Collection"}, True),
            ("root", {"Node", "Collection", "RootCollection"}, True),
            ("node", {"Node"}, True),
            ("node", {"Node", "Collection"}, False),
            ("collection", {"Node"}, False),
            ("mystery", {"Node"}, False),
        ],
    )
    def test_matrix(self, node_type: str, labels: set[str], expected: bool) -> None:
        assert labels_consistent(node_type, labels) is expected
