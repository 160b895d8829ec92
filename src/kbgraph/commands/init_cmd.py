"""Command: data root initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from kbgraph.commands._base import KbCommand

if TYPE_CHECKING:
    from kbgraph.commands._context import AppContext

_INIT_EXAMPLES = """\
  kbgraph init
  kbgraph init /path/to/kb --root-name "Research"
  kbgraph --user alice init ~/kb"""


@click.command("init", cls=KbCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--root-name", default=None, help="Display name for new root collections.")
@click.pass_obj
def init_cmd(app: AppContext, path: str, root_name: str | None) -> None:
    """Create kbgraph.toml and the database under PATH.

    With --user, the user's root collection is created too.
    """
    from kbgraph.domain.models import User
    from kbgraph.services.init import InitService

    settings = app.settings.model_copy(update={"data_root": Path(path).resolve()})
    user = User(id=settings.user_id) if settings.user_id else None
    app.emit(InitService.init_store(settings, root_name=root_name, user=user))
