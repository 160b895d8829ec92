"""Typed payload contracts for service and CLI boundaries.

These models validate operation payload shapes before they leave the
service layer so key regressions (for example ``start`` vs ``source``)
fail fast in tests and during development.
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T", bound=BaseModel)


def dump_validated(model_cls: type[T], data: dict[str, Any]) -> dict[str, Any]:
    """Validate *data* against *model_cls* and return it as a plain dict.

    Keys absent from *data* stay absent; keys given as None are kept.
    """
    model = model_cls.model_validate(data)
    return model.model_dump(mode="python", exclude_unset=True)


class NodeData(BaseModel):
    """Projection of one node: ``{id, name, type}``."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    type: Literal["root", "collection", "node"]
    is_root_collection: Literal[True] | None = None


class EdgeData(BaseModel):
    """Projection of one containment edge: ``{start, end, id}``."""

    start: str
    end: str
    id: str


class RemoveResultData(BaseModel):
    """Payload contract for ``CollectionService.remove``."""

    id: str
    removed: bool
    redirected: list[EdgeData] = Field(default_factory=list)


class RemoveNodeResultData(BaseModel):
    """Payload contract for ``CollectionService.remove_node``."""

    start: str
    end: str
    removed: bool


class CollectionDetailData(BaseModel):
    """Payload contract for ``QueryService.get``."""

    collection: NodeData
    parents: list[str]
    children: list[NodeData]
    edges: list[EdgeData]


class UserGraphData(BaseModel):
    """Payload contract for ``QueryService.user_graph``."""

    user: str
    root: str | None = None
    nodes: list[NodeData]
    edges: list[EdgeData]
    author_edges: list[EdgeData]


class SearchItem(BaseModel):
    """One search result row."""

    id: str
    name: str
    type: str


class SearchResultData(BaseModel):
    """Payload contract for ``QueryService.search``."""

    query: str
    count: int
    items: list[SearchItem]


class CheckIssue(BaseModel):
    """One integrity finding returned by ``CheckService.check``."""

    model_config = ConfigDict(extra="allow")

    category: str
    severity: Literal["warning", "error"]
    node_id: str | None = None
    message: str


class CheckResultData(BaseModel):
    """Payload contract for ``CheckService.check``."""

    healthy: bool
    count: int
    issues: list[CheckIssue]
