"""InitService — set up a new kbgraph data root.

Pipeline: CONFIG → DATABASE → STAMP → ROOT (optional) → RESPOND
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from kbgraph.config.discovery import CONFIG_FILENAME
from kbgraph.config.models import RootConfig
from kbgraph.infrastructure.store import GraphStore
from kbgraph.services.collection import CollectionService
from kbgraph.services.result import ServiceResult
from kbgraph.services.upgrade import UpgradeService

if TYPE_CHECKING:
    from kbgraph.config.settings import KbSettings
    from kbgraph.domain.models import User

logger = logging.getLogger(__name__)


def render_config(root_name: str | None = None) -> str:
    """Text of a fresh ``kbgraph.toml``. Only overrides belong in the file.

    Examples:
        >>> print(render_config("Lab notes"))
        # kbgraph configuration. Defaults are built in; add overrides only.
        <BLANKLINE>
        [root]
        name = "Lab notes"
        <BLANKLINE>
    """
    lines = ["# kbgraph configuration. Defaults are built in; add overrides only.", ""]
    if root_name:
        lines += ["[root]", f"name = {json.dumps(root_name)}", ""]
    return "\n".join(lines)


class InitService:
    """Creates the config file, database and (optionally) a user's root."""

    @staticmethod
    def init_store(
        settings: KbSettings,
        *,
        root_name: str | None = None,
        user: User | None = None,
    ) -> ServiceResult:
        """Initialize ``settings.data_root``. Safe to re-run on an existing root."""
        op = "init"
        data_root = settings.data_root
        data_root.mkdir(parents=True, exist_ok=True)

        config_path = data_root / CONFIG_FILENAME
        if not config_path.exists():
            config_path.write_text(render_config(root_name), encoding="utf-8")
            logger.info("Wrote %s", config_path)

        if root_name:
            settings = settings.model_copy(update={"root": RootConfig(name=root_name)})

        store = GraphStore(settings)
        try:
            stamped = UpgradeService(store).stamp_current()
            if not stamped.ok:
                return stamped.model_copy(update={"op": op})

            data = {
                "data_root": str(data_root),
                "db_path": str(store.db_path),
                "revision": stamped.data["current"],
            }
            warnings: list[str] = []
            if user is not None:
                store.init_event_bus(sync=True)
                root = CollectionService(store).create_root_collection(user)
                if not root.ok:
                    return root.model_copy(update={"op": op})
                data["root_id"] = root.data["id"]
                warnings.extend(root.warnings)
        finally:
            store.close()

        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)
