"""Command group: structural operations on collections and their members."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from kbgraph.commands._base import KbGroup
from kbgraph.services.collection import DEFAULT_NODE_NAME, CollectionService

if TYPE_CHECKING:
    from kbgraph.commands._context import AppContext

_COLLECTION_EXAMPLES = """\
  kbgraph --user alice collection root
  kbgraph --user alice collection create "Reading list"
  kbgraph --user alice collection create "Papers" --parent reading --id papers
  kbgraph --user alice collection new-node papers --name "Attention paper" --id paper-42
  kbgraph --user alice collection add-node papers paper-42 --edge-id e-42
  kbgraph --user alice collection move-node paper-42 --from papers --to archive
  kbgraph --user alice collection remove papers
  kbgraph --user alice --json collection show reading"""


@click.group(cls=KbGroup, examples=_COLLECTION_EXAMPLES)
def collection() -> None:
    """Create, link, restructure and inspect collections."""


@collection.command(
    examples="""\
  kbgraph --user alice collection root
  kbgraph --user alice -q collection root"""
)
@click.pass_obj
def root(app: AppContext) -> None:
    """Create the root collection, or show the existing one."""
    app.emit(CollectionService(app.store).create_root_collection(app.user))


@collection.command(
    examples="""\
  kbgraph --user alice collection create "Reading list"
  kbgraph --user alice collection create "Papers" --parent reading --id papers"""
)
@click.argument("name")
@click.option("--parent", "parent_id", default=None, help="Container id (default: the root).")
@click.option("--id", "node_id", default=None, help="Collection id (default: generated).")
@click.pass_obj
def create(app: AppContext, name: str, parent_id: str | None, node_id: str | None) -> None:
    """Create a collection inside PARENT."""
    svc = CollectionService(app.store)
    user = app.user
    if parent_id is None:
        root_result = svc.create_root_collection(user)
        if not root_result.ok:
            app.emit(root_result)
        parent_id = root_result.data["id"]
    app.emit(svc.create(user, node_id or app.new_id(), parent_id, name))


@collection.command(
    "new-node",
    examples="""\
  kbgraph --user alice collection new-node papers
  kbgraph --user alice collection new-node papers --name "Attention paper" --id paper-42""",
)
@click.argument("collection_id")
@click.option("--name", default=DEFAULT_NODE_NAME, show_default=True, help="Display name.")
@click.option("--id", "node_id", default=None, help="Node id (default: generated).")
@click.pass_obj
def new_node(app: AppContext, collection_id: str, name: str, node_id: str | None) -> None:
    """Create a plain node inside COLLECTION_ID."""
    svc = CollectionService(app.store)
    app.emit(svc.create_node(app.user, node_id or app.new_id(), collection_id, name))


@collection.command(
    examples="""\
  kbgraph --user alice collection connect paper-42 favourites
  kbgraph --user alice collection connect paper-42 favourites --edge-id e-7"""
)
@click.argument("source_id")
@click.argument("target_id")
@click.option("--edge-id", default=None, help="Edge id (default: generated).")
@click.pass_obj
def connect(app: AppContext, source_id: str, target_id: str, edge_id: str | None) -> None:
    """Add a containment edge SOURCE_ID -> TARGET_ID."""
    svc = CollectionService(app.store)
    app.emit(svc.connect(app.user, source_id, target_id, edge_id or app.new_id()))


@collection.command(
    examples="""\
  kbgraph --user alice collection remove papers
  kbgraph --user alice --json collection remove papers"""
)
@click.argument("collection_id")
@click.pass_obj
def remove(app: AppContext, collection_id: str) -> None:
    """Demote a collection to a node, re-homing its members to its parents."""
    app.emit(CollectionService(app.store).remove(app.user, collection_id))


@collection.command(
    "add-node",
    examples="""\
  kbgraph --user alice collection add-node papers paper-42
  kbgraph --user alice collection add-node papers paper-42 --edge-id e-42""",
)
@click.argument("collection_id")
@click.argument("node_id")
@click.option("--edge-id", default=None, help="Edge id (default: generated).")
@click.pass_obj
def add_node(app: AppContext, collection_id: str, node_id: str, edge_id: str | None) -> None:
    """Add NODE_ID to COLLECTION_ID, keeping its other memberships."""
    svc = CollectionService(app.store)
    app.emit(svc.add_node(app.user, collection_id, node_id, edge_id or app.new_id()))


@collection.command(
    "remove-node",
    examples="""\
  kbgraph --user alice collection remove-node papers paper-42""",
)
@click.argument("collection_id")
@click.argument("node_id")
@click.pass_obj
def remove_node(app: AppContext, collection_id: str, node_id: str) -> None:
    """Take NODE_ID out of COLLECTION_ID."""
    app.emit(CollectionService(app.store).remove_node(app.user, collection_id, node_id))


@collection.command(
    "move-node",
    examples="""\
  kbgraph --user alice collection move-node paper-42 --from papers --to archive
  kbgraph --user alice collection move-node paper-42 --from papers --to archive --edge-id e-9""",
)
@click.argument("node_id")
@click.option("--from", "source_id", required=True, help="Current container.")
@click.option("--to", "target_id", required=True, help="New container.")
@click.option("--edge-id", default=None, help="New edge id (default: generated).")
@click.pass_obj
def move_node(
    app: AppContext,
    node_id: str,
    source_id: str,
    target_id: str,
    edge_id: str | None,
) -> None:
    """Move NODE_ID from one container to another in one step."""
    svc = CollectionService(app.store)
    app.emit(svc.move_node(app.user, source_id, node_id, target_id, edge_id or app.new_id()))


@collection.command(
    examples="""\
  kbgraph --user alice collection rename papers "Papers to read\""""
)
@click.argument("node_id")
@click.argument("name")
@click.pass_obj
def rename(app: AppContext, node_id: str, name: str) -> None:
    """Change the display name of NODE_ID."""
    app.emit(CollectionService(app.store).rename(app.user, node_id, name))


@collection.command(
    examples="""\
  kbgraph --user alice collection show reading
  kbgraph --user alice -v collection show reading"""
)
@click.argument("collection_id")
@click.pass_obj
def show(app: AppContext, collection_id: str) -> None:
    """Show a collection and its direct members."""
    from kbgraph.services.query import QueryService

    app.emit(QueryService(app.store).get(app.user, collection_id))
