"""Command: graph integrity report."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from kbgraph.commands._base import KbCommand

if TYPE_CHECKING:
    from kbgraph.commands._context import AppContext


@click.command(
    cls=KbCommand,
    examples="""\
  kbgraph --user alice check
  kbgraph --user alice check --strict
  kbgraph --user alice --json check""",
)
@click.option("--strict", is_flag=True, help="Exit non-zero when any error-level issue is found.")
@click.pass_obj
def check(app: AppContext, strict: bool) -> None:
    """Check root uniqueness, containment, labels, authorship and cycles."""
    from kbgraph.services.check import CheckService

    result = CheckService(app.store).check(app.user)
    app.emit(result)
    if strict and not result.data.get("healthy", True):
        raise SystemExit(1)
