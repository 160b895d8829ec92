"""UpgradeService — schema versioning of the store with Alembic.

Pipeline: CHECK → BACKUP → MIGRATE → REPORT. All revision work happens on
the store's own engine inside one write transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from alembic import command
from alembic.runtime.migration import MigrationContext
from sqlalchemy import inspect

from kbgraph.infrastructure.database.migrations import build_config, script_directory
from kbgraph.services.base import BaseService
from kbgraph.services.result import ServiceResult

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

CHECK_FAILED = "CHECK_FAILED"
BACKUP_FAILED = "BACKUP_FAILED"
MIGRATION_FAILED = "MIGRATION_FAILED"
STAMP_FAILED = "STAMP_FAILED"


class UpgradeService(BaseService):
    """Reports and applies pending revisions of the store schema."""

    @staticmethod
    def _has_schema(conn: Connection) -> bool:
        """True when the graph tables exist (e.g. created by ``init_database``)."""
        return "nodes" in inspect(conn).get_table_names()

    def _backup_db(self) -> Path:
        """Snapshot the database into ``.kbgraph/backups/`` with SQLite's backup API."""
        db_path = self._store.db_path
        backup_dir = db_path.parent / "backups"
        backup_dir.mkdir(exist_ok=True)
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
        target = backup_dir / f"{db_path.stem}-{stamp}{db_path.suffix}"

        # The backup API copies pages still held in the WAL file.
        with self._store.engine.connect() as conn:
            source = conn.connection.driver_connection
            dest = sqlite3.connect(target)
            try:
                source.backup(dest)
            finally:
                dest.close()
        logger.info("Backed up %s to %s", db_path, target)
        return target

    def check_pending(self) -> ServiceResult:
        """List revisions between the stamped version and head, newest first."""
        op = "upgrade"

        try:
            script = script_directory()
            head = script.get_current_head()
            with self._store.engine.connect() as conn:
                current = MigrationContext.configure(conn).get_current_revision()

            pending: list[dict[str, Any]] = []
            if head is not None and current != head:
                pending = [
                    {"revision": rev.revision, "description": rev.doc or ""}
                    for rev in script.iterate_revisions(head, current or "base")
                ]
        except Exception as exc:
            logger.warning("Migration check failed: %s", exc)
            return ServiceResult.failure(op, CHECK_FAILED, f"Failed to check migrations: {exc}")

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "pending_count": len(pending),
                "pending": pending,
                "current": current,
                "head": head,
            },
        )

    def apply(self) -> ServiceResult:
        """Back up the database, then bring it to head."""
        op = "upgrade"

        check_result = self.check_pending()
        if not check_result.ok:
            return check_result

        pending_count = check_result.data["pending_count"]
        head = check_result.data["head"]
        if pending_count == 0:
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    "applied_count": 0,
                    "current": head,
                    "message": "Database is already up to date",
                },
            )

        try:
            backup_path = self._backup_db()
        except (OSError, sqlite3.Error) as exc:
            return ServiceResult.failure(op, BACKUP_FAILED, f"Backup failed: {exc}")

        try:
            with self._store.engine.begin() as conn:
                cfg = build_config(conn)
                # An unversioned database that already has the tables is stamped, not migrated.
                if check_result.data["current"] is None and self._has_schema(conn):
                    command.stamp(cfg, "head")
                else:
                    command.upgrade(cfg, "head")
        except Exception as exc:
            logger.error("Migration failed, backup kept at %s", backup_path)
            return ServiceResult.failure(
                op,
                MIGRATION_FAILED,
                f"Migration failed: {exc}. Backup at: {backup_path}",
                backup_path=str(backup_path),
            )

        logger.info("Upgraded %s to %s (%d revision(s))", self._store.db_path, head, pending_count)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "applied_count": pending_count,
                "current": head,
                "backup_path": str(backup_path),
            },
        )

    def stamp_current(self) -> ServiceResult:
        """Mark the database as at head without running revisions."""
        op = "upgrade"

        try:
            with self._store.engine.begin() as conn:
                command.stamp(build_config(conn), "head")
            head = script_directory().get_current_head()
        except Exception as exc:
            return ServiceResult.failure(op, STAMP_FAILED, f"Failed to stamp database: {exc}")

        return ServiceResult(ok=True, op=op, data={"stamped": True, "current": head})
