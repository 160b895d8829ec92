"""Alembic migrations for the kbgraph store.

Configuration is built in code from a live connection, so revisions run
with the same pragmas and ``BEGIN IMMEDIATE`` locking as graph
transactions. Revision scripts live in ``versions/``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from alembic.config import Config
from alembic.script import ScriptDirectory

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

MIGRATIONS_DIR = Path(__file__).parent


def build_config(connection: Connection | None = None) -> Config:
    """Alembic config for the bundled scripts, bound to *connection* when given."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    if connection is not None:
        cfg.attributes["connection"] = connection
    return cfg


def script_directory() -> ScriptDirectory:
    return ScriptDirectory.from_config(build_config())
