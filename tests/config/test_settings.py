"""Tests for FormctlSettings priority chain."""

from __future__ import annotations

from pathlib import Path

import click
import pytest
from pydantic import ValidationError

from formctl.config.settings import FormctlSettings


def _write_config(directory: Path, body: str) -> Path:
    path = directory / "formctl.toml"
    path.write_text(body, encoding="utf-8")
    return path


@pytest.mark.usefixtures("_isolated_project")
class TestFromCli:
    def test_defaults_without_config(self, tmp_path: Path) -> None:
        settings = FormctlSettings.from_cli()
        assert settings.config_path is None
        assert settings.project_root == tmp_path
        assert settings.lock.ttl_seconds == 1800
        assert settings.history.max_size == 50
        assert settings.store_dir == tmp_path / ".formctl"

    def test_toml_discovered_by_walk_up(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_config(tmp_path, "[lock]\nttl_seconds = 60\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        settings = FormctlSettings.from_cli()
        assert settings.lock.ttl_seconds == 60
        assert settings.project_root == tmp_path

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        other = tmp_path / "conf"
        other.mkdir()
        path = _write_config(other, '[store]\ndirectory = "data"\n')
        settings = FormctlSettings.from_cli(config_path=str(path))
        assert settings.config_path == path
        assert settings.store_dir == other / "data"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_config(tmp_path, "[lock]\nttl_seconds = 60\nretries = 3\n")
        monkeypatch.setenv("FORMCTL_LOCK__TTL_SECONDS", "90")
        settings = FormctlSettings.from_cli()
        assert settings.lock.ttl_seconds == 90
        assert settings.lock.retries == 3

    def test_cli_flags_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FORMCTL_VERBOSE", "false")
        settings = FormctlSettings.from_cli(verbose=True, json_output=True)
        assert settings.verbose
        assert settings.json_output

    def test_invalid_toml(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "[lock\n")
        with pytest.raises(click.ClickException, match="Invalid TOML"):
            FormctlSettings.from_cli()

    def test_absolute_store_dir(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere"
        _write_config(tmp_path, f'[store]\ndirectory = "{target.as_posix()}"\n')
        assert FormctlSettings.from_cli().store_dir == target

    def test_frozen(self) -> None:
        settings = FormctlSettings.from_cli()
        with pytest.raises(ValueError):
            settings.verbose = True  # type: ignore[misc]

    def test_missing_explicit_config(self, tmp_path: Path) -> None:
        with pytest.raises(click.ClickException, match="Config file not found"):
            FormctlSettings.from_cli(config_path=str(tmp_path / "absent.toml"))

    def test_unknown_section_ignored(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "[vault]\nname = 'x'\n[history]\nmax_size = 5\n")
        settings = FormctlSettings.from_cli()
        assert settings.history.max_size == 5


    def test_invalid_section_values(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "[history]\nmax_size = 0\n")
        with pytest.raises(ValidationError):
            FormctlSettings.from_cli()

    def test_sparse_sections_keep_defaults(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "[versions]\ntrack_position = true\n")
        settings = FormctlSettings.from_cli()
        assert settings.versions.track_position is True
        assert settings.cache.ttl_seconds == 300.0
        assert settings.validation.required_message == "This field is required"
