"""Locate ``kbgraph.toml``.

``KBGRAPH_CONFIG`` pins the file outright; otherwise the nearest
``kbgraph.toml`` in the start directory or any ancestor wins, the same way
git finds ``.git/``. The ``--config`` flag bypasses this module entirely.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "kbgraph.toml"
CONFIG_ENV_VAR = "KBGRAPH_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file governing *start* (default: cwd), or None.

    A ``KBGRAPH_CONFIG`` pointing at a missing file yields None rather than
    falling back to the directory search.
    """
    pinned = os.environ.get(CONFIG_ENV_VAR)
    if pinned:
        path = Path(pinned)
        return path if path.is_file() else None

    here = (start or Path.cwd()).resolve()
    return next(
        (d / CONFIG_FILENAME for d in (here, *here.parents) if (d / CONFIG_FILENAME).is_file()),
        None,
    )
