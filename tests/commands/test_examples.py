"""Tests for the --examples flag on groups and commands."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from formctl.cli import cli


@pytest.mark.usefixtures("_isolated_project")
class TestExamples:
    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["lock", "--examples"], "formctl lock acquire contact-form"),
            (["version", "--examples"], "formctl version publish contact-form 2"),
            (["evaluate", "--examples"], "--set country=US"),
            (["validate", "--examples"], "--strict"),
            (["lock", "release", "--examples"], "--force --reason"),
        ],
    )
    def test_examples_printed(
        self, cli_runner: CliRunner, args: list[str], expected: str
    ) -> None:
        result = cli_runner.invoke(cli, args)
        assert result.exit_code == 0
        assert "Examples for" in result.output
        assert expected in result.output

    def test_examples_skip_required_arguments(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["lock", "acquire", "--examples"])
        assert result.exit_code == 0
