"""Pydantic models for the ``kbgraph.toml`` sections.

Sparse TOML contract: defaults live here and the file holds overrides only,
so a fresh data root needs no config file at all. Unknown keys are
rejected so a misspelt option fails loudly instead of being ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

_SECTION = ConfigDict(frozen=True, extra="forbid")


class StoreConfig(BaseModel):
    """[store] section: SQLite file and connection behaviour."""

    model_config = _SECTION

    db_name: str = Field(default="kbgraph.db", pattern=r"^[\w.-]+$")
    busy_timeout: float = Field(default=5.0, ge=0)
    echo: bool = False


class RootConfig(BaseModel):
    """[root] section."""

    model_config = _SECTION

    name: str = Field(default="My Knowledge Base", min_length=1)


class SearchConfig(BaseModel):
    """[search] section."""

    model_config = _SECTION

    enabled: bool = True


class EventsConfig(BaseModel):
    """[events] section: after-commit hook delivery."""

    model_config = _SECTION

    max_retries: int = Field(default=3, ge=1)
    max_workers: int = Field(default=2, ge=1)
