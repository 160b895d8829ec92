"""Telemetry for service calls: operation-scoped log context and timing spans.

Every ``@traced`` call binds ``op=<Service.method>`` into structlog's
context variables, so log lines emitted during a mutation (including
stdlib ``logging`` records, via ``merge_contextvars``) name the operation
they belong to.

Span trees are only built with ``--verbose``. A traced call becomes the
root span; ``trace_span`` blocks inside it (``read_parents``, ``redirect``,
``fts_match`` ...) become children. The finished tree is placed in
``ServiceResult.meta["telemetry"]``.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from kbgraph.services.result import ServiceResult

log = structlog.get_logger("kbgraph.telemetry")

_enabled: ContextVar[bool] = ContextVar("kbgraph_telemetry", default=False)
_active: ContextVar[Span | None] = ContextVar("kbgraph_active_span", default=None)

_P = ParamSpec("_P")
_R = TypeVar("_R")


@dataclass
class Span:
    """One timed stage of a service call."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    annotations: dict[str, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        """Attach a value (row counts, edge counts) to this stage."""
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        if self.children:
            out["children"] = [child.to_dict() for child in self.children]
        return out


@contextmanager
def _activate(span: Span) -> Iterator[Span]:
    token = _active.set(span)
    try:
        yield span
    finally:
        span.end()
        _active.reset(token)


@contextmanager
def trace_span(name: str) -> Iterator[Span | None]:
    """Time a stage of the enclosing traced call.

    Yields None when telemetry is off or no traced call is running.
    """
    parent = _active.get() if _enabled.get() else None
    if parent is None:
        yield None
        return

    child = Span(name=name, parent=parent)
    parent.children.append(child)
    with _activate(child):
        yield child


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Decorate a service method: bind ``op`` for logging and, when enabled, time it."""
    op_name = func.__qualname__

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        with structlog.contextvars.bound_contextvars(op=op_name):
            if not _enabled.get():
                return func(*args, **kwargs)

            span = Span(name=op_name)
            try:
                with _activate(span):
                    result = func(*args, **kwargs)
            except Exception:
                log.debug("span.failed", duration_ms=round(span.duration_ms, 2))
                raise

            ok = not isinstance(result, ServiceResult) or result.ok
            log.debug(
                "span.complete",
                duration_ms=round(span.duration_ms, 2),
                ok=ok,
                stages=len(span.children),
            )
            if isinstance(result, ServiceResult):
                meta = {**(result.meta or {}), "telemetry": span.to_dict()}
                return result.model_copy(update={"meta": meta})  # type: ignore[return-value]
            return result

    return wrapper


def enable_telemetry() -> None:
    """Turn span collection on for the current context (``--verbose``)."""
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)


def get_current_span() -> Span | None:
    """The innermost active span, for annotating outside a ``trace_span`` block."""
    if not _enabled.get():
        return None
    return _active.get()
