"""FormctlSettings: CLI flags, environment and ``formctl.toml`` merged.

Sources, highest priority first:

1. keyword arguments (the CLI flags Click parsed)
2. ``FORMCTL_*`` environment variables, ``__`` for nesting
   (``FORMCTL_LOCK__TTL_SECONDS=60``)
3. ``formctl.toml``, explicit via ``-c`` or found by walking up from CWD
4. defaults on the section models in :mod:`formctl.config.models`
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from formctl.config.discovery import find_config, read_toml
from formctl.config.models import (
    CacheConfig,
    HistoryConfig,
    LockConfig,
    StoreConfig,
    ValidationConfig,
    VersionsConfig,
)

# TOML file chosen by from_cli(), read back by settings_customise_sources().
_pending_toml: ContextVar[Path | None] = ContextVar("formctl_pending_toml", default=None)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Settings source over an already located ``formctl.toml``."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data = read_toml(toml_path) if toml_path and toml_path.is_file() else {}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


class FormctlSettings(BaseSettings):
    """Resolved configuration for one formctl invocation.

    Attributes:
        project_root: Directory of the loaded ``formctl.toml``, or CWD.
            A relative ``[store] directory`` is resolved against it.
        config_path: The TOML file that was loaded, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "FORMCTL_",
        "env_nested_delimiter": "__",
    }

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # Global CLI flags.
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    lock: LockConfig = Field(default_factory=LockConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    versions: VersionsConfig = Field(default_factory=VersionsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @property
    def store_dir(self) -> Path:
        """Absolute directory of the SQLite store."""
        directory = Path(self.store.directory)
        return directory if directory.is_absolute() else self.project_root / directory

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
            TomlSettingsSource(settings_cls, _pending_toml.get()),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> FormctlSettings:
        """Build settings for a CLI run.

        An explicit *config_path* must exist. Without one, ``formctl.toml``
        is searched upward from *project_root* (or CWD) and its directory
        becomes the project root.
        """
        if config_path:
            toml_path: Path | None = Path(config_path)
            if not toml_path.is_file():
                msg = f"Config file not found: {config_path}"
                raise click.ClickException(msg)
        else:
            toml_path = find_config(project_root)

        if project_root is None:
            project_root = toml_path.parent if toml_path else Path.cwd()

        token = _pending_toml.set(toml_path)
        try:
            return cls(project_root=project_root, config_path=toml_path, **cli_flags)
        finally:
            _pending_toml.reset(token)
