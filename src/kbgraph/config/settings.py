"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``KBGRAPH_*`` prefix, ``__`` for nested keys
  3. TOML file    — ``kbgraph.toml`` found by walking up from the data root
  4. Code defaults — baked into :mod:`kbgraph.config.models`

Configuration problems (unreadable TOML, a missing ``--config`` file, a
value that fails validation) surface as :class:`click.ClickException` so
the CLI reports them as one line instead of a traceback.
"""

from __future__ import annotations

import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import click
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from kbgraph.config.discovery import find_config
from kbgraph.config.models import EventsConfig, RootConfig, SearchConfig, StoreConfig

# The TOML file chosen by from_cli(), read by settings_customise_sources().
_toml_path: ContextVar[Path | None] = ContextVar("kbgraph_toml_path", default=None)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by one ``kbgraph.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path is None:
            return
        try:
            self._data = tomllib.loads(toml_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise click.ClickException(f"Invalid TOML in {toml_path}: {exc}") from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


class KbSettings(BaseSettings):
    """Resolved, frozen configuration for one kbgraph invocation.

    Attributes:
        data_root: Directory holding ``.kbgraph/`` (parent of ``kbgraph.toml``,
            or CWD if no config found).
        config_path: The TOML file that was loaded, if any.
        user_id: Acting user for CLI invocations (``--user`` / ``KBGRAPH_USER_ID``).
    """

    model_config = SettingsConfigDict(
        frozen=True,
        env_prefix="KBGRAPH_",
        env_nested_delimiter="__",
    )

    data_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    sync: bool = False
    user_id: str | None = None

    # --- TOML sections ---
    store: StoreConfig = Field(default_factory=StoreConfig)
    root: RootConfig = Field(default_factory=RootConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, _toml_path.get()),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_root: Path | None = None,
        **cli_flags: Any,
    ) -> KbSettings:
        """Build settings for one CLI invocation.

        An explicit *config_path* must exist. Without one, ``kbgraph.toml``
        is searched for upward from *data_root* (or the CWD). *data_root*
        defaults to the config file's directory. Flags passed as None are
        dropped so env vars and TOML can still supply them.
        """
        if config_path:
            toml_path: Path | None = Path(config_path)
            if not toml_path.is_file():
                raise click.ClickException(f"Config file not found: {config_path}")
        else:
            toml_path = find_config(data_root)

        if data_root is None:
            data_root = toml_path.parent if toml_path else Path.cwd()

        flags = {k: v for k, v in cli_flags.items() if v is not None}

        token = _toml_path.set(toml_path)
        try:
            return cls(data_root=data_root, config_path=toml_path, **flags)
        except ValidationError as exc:
            source = toml_path or "environment"
            raise click.ClickException(f"Invalid configuration ({source}):\n{exc}") from exc
        finally:
            _toml_path.reset(token)
