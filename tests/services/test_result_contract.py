"""Tests for the ServiceResult contract."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from formctl.services.result import ServiceError, ServiceResult, failure


class TestServiceResult:
    def test_defaults(self) -> None:
        result = ServiceResult(ok=True, op="lock_status")
        assert result.data == {}
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="lock_status")
        with pytest.raises(ValidationError):
            result.ok = False  # type: ignore[misc]

    def test_json_round_trip(self) -> None:
        result = ServiceResult(ok=True, op="list_versions", data={"count": 0, "versions": []})
        assert ServiceResult.model_validate_json(result.model_dump_json()) == result


class TestFailure:
    def test_builds_error(self) -> None:
        result = failure("release_lock", "NOT_HOLDER", "nope", {"form_id": "f"})
        assert not result.ok
        assert result.error == ServiceError(
            code="NOT_HOLDER", message="nope", detail={"form_id": "f"}
        )

    def test_warnings_and_empty_detail(self) -> None:
        result = failure("commit", "READ_ONLY", "read-only", warnings=["hook failed"])
        assert result.error.detail == {}
        assert result.warnings == ["hook failed"]
