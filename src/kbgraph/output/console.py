"""Rich theme and capture console for kbgraph output.

Renderers draw onto a Console; :func:`capture` hands one out and collects
whatever was printed as a plain string. Rich drops color codes by itself
when the process is not attached to a terminal (CliRunner, pipes).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from io import StringIO

from rich.console import Console
from rich.theme import Theme

DEFAULT_WIDTH = 120

# Node types share a prefix so a type string maps straight to its style.
_TYPE_PREFIX = "kb.type."

KB_THEME = Theme(
    {
        "kb.ok": "bold green",
        "kb.error": "bold red",
        "kb.warning": "bold yellow",
        "kb.op": "bold cyan",
        "kb.key": "dim",
        "kb.id": "bold blue",
        "kb.name": "bold",
        f"{_TYPE_PREFIX}root": "magenta",
        f"{_TYPE_PREFIX}collection": "green",
        f"{_TYPE_PREFIX}node": "white",
    }
)


class Capture:
    """Text collected by a :func:`capture` block, readable after it exits."""

    def __init__(self) -> None:
        self.text = ""


@contextmanager
def capture(*, width: int = DEFAULT_WIDTH) -> Iterator[tuple[Console, Capture]]:
    """Yield a themed Console writing to memory, and the holder for its output."""
    buffer = StringIO()
    holder = Capture()
    console = Console(file=buffer, theme=KB_THEME, highlight=False, width=width)
    try:
        yield console, holder
    finally:
        holder.text = buffer.getvalue()


def style_for_type(node_type: str) -> str:
    """Theme style for a node type; unknown types render unstyled."""
    name = f"{_TYPE_PREFIX}{node_type}"
    return name if name in KB_THEME.styles else ""
