"""Operation telemetry for ``--verbose``: span trees per session operation.

Each ``@traced`` session method opens a root span; stages inside it
(``trace_span``) become children. When the method returns a
:class:`ServiceResult`, the root span is annotated with the network the
operation touched and, on failure, the error code, and the tree lands in
``result.meta["telemetry"]``.

Disabled (the default) costs one ContextVar lookup per call. Under
asyncio every task has its own copy of the context, so concurrent
operations build separate trees and a background refresh never attaches
to a finished one.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from sharectl.services.result import ServiceResult

_enabled: ContextVar[bool] = ContextVar("sharectl_telemetry", default=False)
_current_span: ContextVar[Span | None] = ContextVar("sharectl_span", default=None)

_F = TypeVar("_F", bound=Callable[..., Any])

# Result data keys naming the network an operation acted on, in priority order.
NETWORK_KEYS = ("network_id", "active_id", "id")


@dataclass
class Span:
    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            result["annotations"] = dict(self.annotations)
        if self.children:
            result["children"] = [c.to_dict() for c in self.children]
        return result


def enable_telemetry() -> None:
    """Turn on span collection for this context (``--verbose``)."""
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)


@contextmanager
def trace_span(name: str, **annotations: Any) -> Generator[Span | None]:
    """Child span under the current operation; yields None outside one."""
    parent = _current_span.get() if _enabled.get() else None
    if parent is None:
        yield None
        return

    child = Span(name=name, parent=parent, annotations=annotations)
    parent.children.append(child)
    token = _current_span.set(child)
    try:
        yield child
    finally:
        child.end()
        _current_span.reset(token)


def traced(func: _F) -> _F:
    """Give each call of a session operation its own span tree.

    Works on plain and coroutine functions.
    """
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _enabled.get():
                return await func(*args, **kwargs)
            span, token = _open(func)
            try:
                result = await func(*args, **kwargs)
            except Exception:
                _close(span, token, None)
                raise
            return _close(span, token, result)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not _enabled.get():
            return func(*args, **kwargs)
        span, token = _open(func)
        try:
            result = func(*args, **kwargs)
        except Exception:
            _close(span, token, None)
            raise
        return _close(span, token, result)

    return wrapper  # type: ignore[return-value]


def _open(func: Callable[..., Any]) -> tuple[Span, Token[Span | None]]:
    span = Span(name=func.__qualname__)
    return span, _current_span.set(span)


def _close(span: Span, token: Token[Span | None], result: Any) -> Any:
    span.end()
    _current_span.reset(token)
    if isinstance(result, ServiceResult):
        _annotate_result(span, result)

    structlog.get_logger("sharectl.telemetry").debug(
        "span.complete",
        span_name=span.name,
        duration_ms=round(span.duration_ms, 2),
        ok=isinstance(result, ServiceResult) and result.ok,
        children=len(span.children),
        **span.annotations,
    )
    if not isinstance(result, ServiceResult):
        return result
    return result.model_copy(update={"meta": {**(result.meta or {}), "telemetry": span.to_dict()}})


def _annotate_result(span: Span, result: ServiceResult) -> None:
    network = next(
        (result.data[k] for k in NETWORK_KEYS if isinstance(result.data.get(k), str)),
        None,
    )
    if network is not None:
        span.annotate("network", network)
    if result.error is not None:
        span.annotate("error", result.error.code)
