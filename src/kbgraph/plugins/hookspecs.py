"""Pluggy hook specifications for kbgraph lifecycle events.

Events fire after the owning graph transaction has committed and are
dispatched through the WAL-backed :class:`~kbgraph.plugins.event_bus.EventBus`.
A failing implementation never affects the graph mutation that fired it.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("kbgraph")


class KbgraphHookSpec:
    """Hook specifications for the kbgraph plugin system."""

    @hookspec
    def post_create(
        self,
        user_id: str,
        node_id: str,
        name: str,
        type: str,
        parent_id: str | None,
    ) -> None:
        """Called after a root or collection is created."""

    @hookspec
    def post_rename(
        self,
        user_id: str,
        node_id: str,
        old_name: str,
        name: str,
    ) -> None:
        """Called after a node's display name changes."""

    @hookspec
    def post_remove(
        self,
        user_id: str,
        node_id: str,
        redirected: list[dict[str, Any]],
    ) -> None:
        """Called after a collection is demoted and its children re-homed."""

    @hookspec
    def index_node(self, node_id: str, name: str) -> None:
        """Called when a node's searchable name is created or changed."""
