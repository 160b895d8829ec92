"""Commands: whole-graph view and name search."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from kbgraph.commands._base import KbCommand
from kbgraph.services.query import QueryService

if TYPE_CHECKING:
    from kbgraph.commands._context import AppContext


@click.command(
    cls=KbCommand,
    examples="""\
  kbgraph --user alice graph
  kbgraph --user alice --json graph""",
)
@click.pass_obj
def graph(app: AppContext) -> None:
    """Show every node you authored as a containment tree."""
    app.emit(QueryService(app.store).user_graph(app.user))


@click.command(
    cls=KbCommand,
    examples="""\
  kbgraph --user alice search "reading"
  kbgraph --user alice --json search "papers" --limit 5""",
)
@click.argument("query_text")
@click.option("--limit", default=20, type=click.IntRange(min=1), help="Max results.")
@click.pass_obj
def search(app: AppContext, query_text: str, limit: int) -> None:
    """Full-text search over node names."""
    app.emit(QueryService(app.store).search(app.user, query_text, limit=limit))
