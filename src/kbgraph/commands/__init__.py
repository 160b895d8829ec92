"""Subcommand modules for kbgraph.

Provides register_commands() which uses deferred imports to keep
``kbgraph --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the collection group and standalone commands on the root CLI group."""
    from kbgraph.commands.check import check
    from kbgraph.commands.collection import collection
    from kbgraph.commands.init_cmd import init_cmd
    from kbgraph.commands.query import graph, search
    from kbgraph.commands.upgrade import upgrade

    cli.add_command(collection)
    cli.add_command(graph)
    cli.add_command(search)
    cli.add_command(check)
    cli.add_command(init_cmd)
    cli.add_command(upgrade)
