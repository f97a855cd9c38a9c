"""Tests for span telemetry and @traced meta injection."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from formctl.infrastructure.store import FormStore
from formctl.services.locking import LockService
from formctl.services.result import ServiceResult
from formctl.services.telemetry import (
    Span,
    disable_telemetry,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)


@pytest.fixture
def telemetry() -> Iterator[None]:
    enable_telemetry()
    try:
        yield
    finally:
        disable_telemetry()


class Probe:
    @traced
    def run(self) -> ServiceResult:
        with trace_span("inner") as span:
            if span is not None:
                span.annotate("rows", 3)
        return ServiceResult(ok=True, op="sample")

    @traced
    async def run_async(self) -> ServiceResult:
        return ServiceResult(ok=True, op="sample")


class TestDisabled:
    def test_no_meta(self) -> None:
        assert Probe().run().meta is None
        assert get_current_span() is None

    def test_trace_span_yields_none(self) -> None:
        with trace_span("x") as span:
            assert span is None


@pytest.mark.usefixtures("telemetry")
class TestEnabled:
    def test_meta_tree(self) -> None:
        tree = Probe().run().meta["telemetry"]
        assert tree["name"] == "Probe.run"
        assert tree["children"][0]["name"] == "inner"
        assert tree["children"][0]["annotations"] == {"rows": 3}

    @pytest.mark.asyncio
    async def test_async_methods(self) -> None:
        enable_telemetry()
        result = await Probe().run_async()
        assert result.meta["telemetry"]["name"] == "Probe.run_async"

    def test_service_methods_traced(self, store: FormStore) -> None:
        result = LockService(store).cleanup_expired()
        tree = result.meta["telemetry"]
        assert tree["name"] == "LockService.cleanup_expired"
        assert [c["name"] for c in tree["children"]] == ["scan_leases"]


class TestSpan:
    def test_duration_and_dict(self) -> None:
        span = Span(name="root")
        assert span.duration_ms == 0.0
        span.end()
        assert span.duration_ms >= 0.0
        assert span.to_dict() == {"name": "root", "duration_ms": round(span.duration_ms, 2)}

    def test_counts_accumulate(self) -> None:
        span = Span(name="scan")
        span.count("leases")
        span.count("leases", 2)
        assert span.to_dict()["counts"] == {"leases": 3}


@pytest.mark.usefixtures("telemetry")
class TestLeaseScanCounts:
    def test_cleanup_counts_held_leases(self, store: FormStore) -> None:
        service = LockService(store)
        service.acquire("a", "alice")
        service.acquire("b", "bob")
        tree = service.cleanup_expired().meta["telemetry"]
        assert tree["children"][0]["counts"] == {"leases": 2}
