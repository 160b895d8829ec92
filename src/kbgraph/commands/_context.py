"""AppContext — per-invocation state shared by every kbgraph command.

The root group builds one from the resolved settings and stores it as
``ctx.obj``; commands receive it with ``@click.pass_obj``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from kbgraph.config.logging import configure_logging
from kbgraph.output.formatters import OutputSettings, format_result
from kbgraph.services.telemetry import enable_telemetry

if TYPE_CHECKING:
    from kbgraph.config.settings import KbSettings
    from kbgraph.domain.models import User
    from kbgraph.infrastructure.store import GraphStore
    from kbgraph.services.result import ServiceResult


class AppContext:
    """Settings, the lazily opened store, the acting user and result output.

    Nothing here touches the database until :attr:`store` is first read, so
    ``--help``, ``--version`` and ``--examples`` work without a data directory.
    """

    def __init__(self, settings: KbSettings) -> None:
        self.settings = settings
        self._store: GraphStore | None = None
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)
        if settings.verbose:
            enable_telemetry()

    @property
    def store(self) -> GraphStore:
        if self._store is None:
            from kbgraph.infrastructure.store import GraphStore

            store = GraphStore(self.settings)
            store.init_event_bus(sync=self.settings.sync)
            self._store = store
        return self._store

    @property
    def user(self) -> User:
        """The acting user from ``--user`` or ``KBGRAPH_USER_ID``; usage error if unset."""
        from kbgraph.domain.models import User

        user_id = self.settings.user_id
        if not user_id:
            raise click.UsageError("No user given. Pass --user or set KBGRAPH_USER_ID.")
        return User(id=user_id)

    def new_id(self) -> str:
        """Fresh identifier for an omitted ``--id`` / ``--edge-id``."""
        return self.store.allocator.generate()

    def close(self) -> None:
        store, self._store = self._store, None
        if store is not None:
            store.close()

    def emit(self, result: ServiceResult) -> None:
        """Print *result*; a failure goes to stderr and ends the process with status 1.

        Success warnings are echoed to stderr in text modes; in JSON mode they
        are already part of the payload.
        """
        out = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        text = format_result(result, settings=out)
        click.echo(text, err=not result.ok)
        if not result.ok:
            raise SystemExit(1)
        if not out.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
