"""BaseService — shared plumbing for the kbgraph services.

A service is bound to one :class:`GraphStore`. Each mutating operation opens
its own ``self._store.transaction()``, turns store errors into failure
results with :meth:`BaseService._store_failure`, and only after the commit
announces the change to plugins through :meth:`BaseService._dispatch_event`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kbgraph.infrastructure.store import StoreConflict
from kbgraph.services.result import CONFLICT, STORE_UNAVAILABLE, ServiceResult

if TYPE_CHECKING:
    from kbgraph.infrastructure.store import GraphStore, StoreError

logger = logging.getLogger(__name__)


class BaseService:
    def __init__(self, store: GraphStore) -> None:
        self._store = store

    def _dispatch_event(
        self, hook_name: str, payload: dict[str, Any], warnings: list[str]
    ) -> None:
        """Hand a committed change to the event bus, if one is running.

        A dispatch error is appended to *warnings*; the committed change stands.
        """
        bus = self._store.event_bus
        if bus is None:
            return
        try:
            bus.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            warnings.append(f"Event dispatch failed for {hook_name}")

    @staticmethod
    def _store_failure(op: str, exc: StoreError) -> ServiceResult:
        """Failure result for a transaction the store rolled back."""
        if isinstance(exc, StoreConflict):
            return ServiceResult.failure(op, CONFLICT, f"Write rejected: {exc}")
        return ServiceResult.failure(op, STORE_UNAVAILABLE, f"Store unavailable: {exc}")
