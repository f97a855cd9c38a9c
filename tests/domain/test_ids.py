"""Tests for ID generation and validation."""

from __future__ import annotations

import pytest

from formctl.domain.ids import generate_command_id, validate_id, version_id


class TestCommandIds:
    def test_format(self) -> None:
        cid = generate_command_id(1700000000000)
        assert cid.startswith("cmd_1700000000000_")
        assert validate_id(cid, "command")

    def test_unique(self) -> None:
        assert len({generate_command_id(1) for _ in range(50)}) == 50


class TestVersionIds:
    def test_format(self) -> None:
        assert version_id("contact", 3) == "contact@v3"
        assert validate_id("contact@v3", "version")

    def test_rejects_zero(self) -> None:
        with pytest.raises(ValueError, match="start at 1"):
            version_id("contact", 0)

    def test_unknown_kind(self) -> None:
        assert validate_id("anything", "nope") is False
