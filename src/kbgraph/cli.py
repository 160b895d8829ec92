"""Root CLI group for kbgraph with global flags and command registration."""

from __future__ import annotations

import click

from kbgraph import __version__
from kbgraph.commands import register_commands
from kbgraph.commands._context import AppContext
from kbgraph.config.settings import KbSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="kbgraph")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("--user", "user_id", default=None, help="Acting user id.")
@click.option("--sync", is_flag=True, help="Run plugin hooks synchronously.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    user_id: str | None,
    sync: bool,
) -> None:
    """kbgraph — personal knowledge-base collection graph."""
    # Unset flags stay None so env vars and kbgraph.toml can still supply them.
    settings = KbSettings.from_cli(
        config_path=config_path,
        json_output=json_output or None,
        quiet=quiet or None,
        verbose=verbose or None,
        log_json=log_json or None,
        sync=sync or None,
        user_id=user_id,
    )
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
