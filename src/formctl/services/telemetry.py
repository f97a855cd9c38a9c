"""Span telemetry for service calls.

Disabled by default; the only cost is one ContextVar read per call.
``--verbose`` turns it on. Each ``@traced`` service method then becomes
a root span, ``trace_span`` blocks nest beneath it, and the finished tree
lands in ``ServiceResult.meta["telemetry"]``.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from formctl.services.result import ServiceResult

log = structlog.get_logger("formctl.telemetry")

_enabled: ContextVar[bool] = ContextVar("formctl_telemetry", default=False)
_active: ContextVar[Span | None] = ContextVar("formctl_span", default=None)


@dataclass
class Span:
    """A timed unit of work.

    ``annotations`` hold arbitrary values; ``counts`` hold integers that
    accumulate, such as leases scanned or rules fired.
    """

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        if self.end_time is None:
            self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def count(self, key: str, amount: int = 1) -> None:
        self.counts[key] = self.counts.get(key, 0) + amount

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.counts:
            data["counts"] = dict(self.counts)
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Open a child of the active span; yields None outside a traced call."""
    parent = _active.get() if _enabled.get() else None
    if parent is None:
        yield None
        return
    child = Span(name=name, parent=parent)
    parent.children.append(child)
    token = _active.set(child)
    try:
        yield child
    finally:
        child.end()
        _active.reset(token)


@contextmanager
def _root_span(name: str) -> Iterator[Span]:
    span = Span(name=name)
    token = _active.set(span)
    try:
        yield span
    except Exception:
        span.end()
        _log_span(span, ok=False)
        raise
    finally:
        _active.reset(token)


def _log_span(span: Span, *, ok: bool) -> None:
    log.debug(
        "span.complete",
        span_name=span.name,
        duration_ms=round(span.duration_ms, 2),
        ok=ok,
        **span.counts,
    )


def _finish(span: Span, result: Any) -> Any:
    span.end()
    _log_span(span, ok=not isinstance(result, ServiceResult) or result.ok)
    if not isinstance(result, ServiceResult):
        return result
    meta = {**(result.meta or {}), "telemetry": span.to_dict()}
    return result.model_copy(update={"meta": meta})


_P = ParamSpec("_P")
_R = TypeVar("_R")


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Time a service method and attach its span tree to the returned result.

    Handles both plain and ``async def`` methods.
    """
    name = func.__qualname__

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _enabled.get():
                return await func(*args, **kwargs)
            with _root_span(name) as span:
                result = await func(*args, **kwargs)
            return _finish(span, result)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _enabled.get():
            return func(*args, **kwargs)
        with _root_span(name) as span:
            result = func(*args, **kwargs)
        return _finish(span, result)  # type: ignore[no-any-return]

    return wrapper


def enable_telemetry() -> None:
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)


def get_current_span() -> Span | None:
    """The active span, for annotating from inside a traced call."""
    return _active.get() if _enabled.get() else None
