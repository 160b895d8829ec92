"""ServiceResult — what every kbgraph service method hands back.

Services never raise for expected failures (missing nodes, permission
violations, rejected writes); they return ``ok=False`` with a coded
:class:`ServiceError`. The CLI turns either shape into output and an exit code.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
VALIDATION_FAILED = "VALIDATION_FAILED"
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

_FROZEN = ConfigDict(frozen=True)


class ServiceError(BaseModel):
    model_config = _FROZEN

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Outcome of one service call.

    ``data`` is the operation's payload when ``ok``; ``error`` is set when not.
    ``warnings`` carries non-fatal problems such as a failed plugin dispatch,
    and ``meta`` carries side information (``replayed``, ``telemetry``).
    """

    model_config = _FROZEN

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(cls, op: str, code: str, message: str, **detail: Any) -> ServiceResult:
        """Error result for *op*; keyword arguments become ``error.detail``."""
        return cls(ok=False, op=op, error=ServiceError(code=code, message=message, detail=detail))
