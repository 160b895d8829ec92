"""Extension layer — plugin system via pluggy.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus single-file plugins in ``.kbgraph/plugins/``.
INVARIANT: Plugin failures are warnings, never errors.
"""

from kbgraph.plugins.event_bus import EventBus
from kbgraph.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager"]
