"""WAL-backed event dispatch via pluggy + ThreadPoolExecutor.

Every event is written to the ``event_wal`` table before its hook runs, so
a notification that fails (or is cut short by process exit) can be
retried later by :meth:`EventBus.drain`. Events are only dispatched after
the graph transaction that produced them has committed.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, insert, select, update

from kbgraph.infrastructure.database.schema import event_wal
from kbgraph.services._helpers import now_iso

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from kbgraph.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

PENDING = "pending"
FAILED = "failed"
COMPLETED = "completed"
DEAD_LETTER = "dead_letter"


class EventBus:
    """WAL-backed event dispatch.

    Parameters:
        engine: SQLAlchemy engine with the ``event_wal`` table.
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Run hooks inline (``--sync`` and tests).
        max_retries: Failed attempts before an event is marked ``dead_letter``.
        max_workers: ThreadPoolExecutor worker count.
    """

    def __init__(
        self,
        engine: Engine,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_retries: int = 3,
        max_workers: int = 2,
    ) -> None:
        self._engine = engine
        self._pm = plugin_manager
        self._sync = sync
        self._max_retries = max_retries
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[None]] = []

    @property
    def plugin_manager(self) -> PluginManager:
        """The manager whose hooks this bus dispatches to."""
        return self._pm

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> int:
        """Write the event to the WAL, then run its hook (inline or on the pool).

        Returns the WAL event row id.
        """
        event_id = self._write_wal(hook_name, payload)

        if self._executor is None:
            self._execute_hook(event_id, hook_name, payload)
        else:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(
                self._executor.submit(self._execute_hook, event_id, hook_name, payload)
            )

        return event_id

    def drain(self) -> list[dict[str, Any]]:
        """Retry pending and failed events synchronously.

        Returns a summary list of ``{id, hook_name, status}`` for each retried event.
        """
        self._wait_futures()

        with self._engine.connect() as conn:
            rows = conn.execute(
                select(event_wal.c.id, event_wal.c.hook_name, event_wal.c.payload)
                .where(event_wal.c.status.in_([PENDING, FAILED]))
                .order_by(event_wal.c.id)
            ).fetchall()

        results: list[dict[str, Any]] = []
        for row in rows:
            self._execute_hook(row.id, row.hook_name, json.loads(row.payload))
            results.append(
                {"id": row.id, "hook_name": row.hook_name, "status": self.status(row.id)}
            )
        return results

    def status(self, event_id: int) -> str:
        """Current WAL status of *event_id*."""
        with self._engine.connect() as conn:
            return conn.execute(
                select(event_wal.c.status).where(event_wal.c.id == event_id)
            ).scalar_one()

    def shutdown(self) -> None:
        """Shutdown the ThreadPoolExecutor, waiting for in-flight hooks."""
        self._wait_futures()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _write_wal(self, hook_name: str, payload: dict[str, Any]) -> int:
        """Insert a pending event into the WAL. Returns the row id."""
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(event_wal).values(
                    hook_name=hook_name,
                    payload=json.dumps(payload),
                    status=PENDING,
                    retries=0,
                    created=now_iso(),
                )
            )
            assert result.lastrowid is not None
            return result.lastrowid

    def _execute_hook(self, event_id: int, hook_name: str, payload: dict[str, Any]) -> None:
        """Run one hook call and record the outcome in the WAL."""
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            logger.debug("No hook named %s; closing event %d", hook_name, event_id)
            self._set_status(event_id, status=COMPLETED, completed=now_iso())
            return

        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.warning("Hook %s failed (event %d): %s", hook_name, event_id, exc)
            self._record_failure(event_id, str(exc))
        else:
            self._set_status(event_id, status=COMPLETED, completed=now_iso(), error=None)

    def _set_status(self, event_id: int, **values: Any) -> None:
        with self._engine.begin() as conn:
            conn.execute(update(event_wal).where(event_wal.c.id == event_id).values(**values))

    def _record_failure(self, event_id: int, error: str) -> None:
        """Count the attempt; the last allowed attempt moves the event to dead_letter."""
        exhausted = event_wal.c.retries + 1 >= self._max_retries
        self._set_status(
            event_id,
            retries=event_wal.c.retries + 1,
            error=error,
            status=case((exhausted, DEAD_LETTER), else_=FAILED),
            completed=case((exhausted, now_iso()), else_=None),
        )

    def _wait_futures(self) -> None:
        for future in self._futures:
            try:
                future.result(timeout=30)
            except Exception:
                logger.debug("Event worker raised", exc_info=True)
        self._futures.clear()
