"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (node timestamps, event WAL)."""
    return datetime.now(UTC).isoformat()


def clean_name(name: object) -> str:
    """Normalize a display name by trimming it and collapsing runs of whitespace.

    Examples:
        >>> clean_name("  Reading list ")
        'Reading list'
        >>> clean_name(None)
        ''
    """
    if name is None:
        return ""
    return " ".join(str(name).split())
